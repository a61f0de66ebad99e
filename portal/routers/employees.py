from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from portal.db.base import MAX_ROW_ID
from portal.db.session import get_db
from portal.models.hr import EMPLOYEE_RECORD, Employee
from portal.schemas.hr import EmployeeOut
from portal.security.dependencies import require_permission

router = APIRouter(prefix="/companies/{company_id}/departments/{department_id}", tags=["employees"])


def _scoped(company_id: int, department_id: int):
    return select(Employee).where(Employee.company_id == company_id, Employee.department_id == department_id)


@router.get(
    "/employees",
    response_model=list[EmployeeOut],
    dependencies=[Depends(require_permission(EMPLOYEE_RECORD, "read"))],
)
def list_employees(
    company_id: int = Path(ge=1, le=MAX_ROW_ID),
    department_id: int = Path(ge=1, le=MAX_ROW_ID),
    db: Session = Depends(get_db),
) -> list[Employee]:
    return list(db.scalars(_scoped(company_id, department_id).order_by(Employee.id)).all())


@router.get(
    "/employees/{id}",
    response_model=EmployeeOut,
    dependencies=[Depends(require_permission(EMPLOYEE_RECORD, "read"))],
)
def get_employee(
    company_id: int = Path(ge=1, le=MAX_ROW_ID),
    department_id: int = Path(ge=1, le=MAX_ROW_ID),
    id: int = Path(ge=1, le=MAX_ROW_ID),
    db: Session = Depends(get_db),
) -> Employee:
    employee = db.scalars(_scoped(company_id, department_id).where(Employee.id == id)).first()
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return employee


@router.delete(
    "/employees/{id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(EMPLOYEE_RECORD, "delete"))],
)
def delete_employee(
    company_id: int = Path(ge=1, le=MAX_ROW_ID),
    department_id: int = Path(ge=1, le=MAX_ROW_ID),
    id: int = Path(ge=1, le=MAX_ROW_ID),
    db: Session = Depends(get_db),
) -> Response:
    employee = db.scalars(_scoped(company_id, department_id).where(Employee.id == id)).first()
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    db.delete(employee)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
