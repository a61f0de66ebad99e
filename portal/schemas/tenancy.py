from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CompanyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    name: str


class MembershipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company: CompanyOut
    role: str
    home_department: DepartmentOut | None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    is_active: bool
    memberships: list[MembershipOut]
