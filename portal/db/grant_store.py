"""
SQLAlchemy-backed grant store.

Reads:
    resolve() loads role, home department, department ownership and the
    department's permissions with ONE statement, so the engine never sees a
    role from one state and permissions from another.

Writes:
    Administrative helpers (bind, grant, revoke, ...) flush but never commit;
    the caller owns the unit of work.

The company-scope invariant (a grant's department and a binding's home
department belong to the binding's company) is also enforced on flush by a
Session listener, so ORM writes that bypass this class are rejected too.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import and_, event, inspect, select
from sqlalchemy.orm import Session

from portal.authz.errors import NoBinding, ScopeMismatch
from portal.authz.model import Permission, ResolvedContext
from portal.authz.store import PermissionLike, to_permissions
from portal.models.tenancy import (
    Company,
    Department,
    DepartmentGrant,
    Permission as PermissionRow,
    User,
    UserCompany,
    grant_permissions,
)

logger = logging.getLogger(__name__)


class SqlGrantStore:
    """
    Grant store bound to one Session.

    The session's lifetime is the store's lifetime: in the API that is one
    request (see portal.security.dependencies).
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # ---- Reads ----------------------------------------------------------------------

    def resolve(self, principal_id: int, company_id: int, department_id: int) -> ResolvedContext:
        stmt = (
            select(
                UserCompany.role,
                UserCompany.department_id.label("home_department_id"),
                Department.company_id.label("department_company_id"),
                PermissionRow.action,
                PermissionRow.resource_kind,
            )
            .outerjoin_from(UserCompany, Department, Department.id == department_id)
            .outerjoin(
                DepartmentGrant,
                and_(
                    DepartmentGrant.user_company_id == UserCompany.id,
                    DepartmentGrant.department_id == department_id,
                ),
            )
            .outerjoin(grant_permissions, grant_permissions.c.grant_id == DepartmentGrant.id)
            .outerjoin(PermissionRow, PermissionRow.id == grant_permissions.c.permission_id)
            .where(UserCompany.user_id == principal_id, UserCompany.company_id == company_id)
        )
        rows = self._session.execute(stmt).all()

        if not rows:
            raise NoBinding(principal_id, company_id)

        first = rows[0]
        if first.department_company_id != company_id:
            raise ScopeMismatch(department_id, company_id, owner_company_id=first.department_company_id)

        permissions = frozenset(
            Permission(action=row.action, resource_kind=row.resource_kind) for row in rows if row.action is not None
        )
        return ResolvedContext(
            principal_id=principal_id,
            company_id=company_id,
            department_id=department_id,
            role=first.role,
            permissions=permissions,
            home_department_id=first.home_department_id,
        )

    def membership(self, user_id: int, company_id: int) -> UserCompany | None:
        return self._session.execute(
            select(UserCompany).where(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
        ).scalar_one_or_none()

    # ---- Administrative writes ------------------------------------------------------

    def add_company(self, name: str) -> Company:
        company = Company(name=name)
        self._session.add(company)
        self._session.flush()
        return company

    def add_department(self, company_id: int, name: str, description: str | None = None) -> Department:
        if self._session.get(Company, company_id) is None:
            raise ValueError(f"unknown company {company_id!r}")
        department = Department(company_id=company_id, name=name, description=description)
        self._session.add(department)
        self._session.flush()
        return department

    def bind(self, user_id: int, company_id: int, role: str, home_department_id: int | None = None) -> UserCompany:
        """Create or update a user's role (and home department) in a company."""

        role = role.strip()
        if not role:
            raise ValueError("role must not be blank")
        if self._session.get(User, user_id) is None:
            raise ValueError(f"unknown user {user_id!r}")
        if self._session.get(Company, company_id) is None:
            raise ValueError(f"unknown company {company_id!r}")
        if home_department_id is not None:
            self._department_in(home_department_id, company_id)

        membership = self.membership(user_id, company_id)
        if membership is None:
            membership = UserCompany(user_id=user_id, company_id=company_id)
            self._session.add(membership)
        membership.role = role
        membership.department_id = home_department_id
        self._session.flush()
        return membership

    def unbind(self, user_id: int, company_id: int) -> bool:
        membership = self.membership(user_id, company_id)
        if membership is None:
            return False
        self._session.delete(membership)
        self._session.flush()
        return True

    def grant(
        self,
        user_id: int,
        company_id: int,
        department_id: int,
        permissions: Iterable[PermissionLike],
    ) -> DepartmentGrant:
        """
        Create or replace the permissions a binding holds in a department.

        Raises ScopeMismatch before anything is added to the session when the
        department belongs to another company.
        """

        perms = to_permissions(permissions)
        membership = self.membership(user_id, company_id)
        if membership is None:
            raise NoBinding(user_id, company_id)
        self._department_in(department_id, company_id)

        grant = self._session.execute(
            select(DepartmentGrant).where(
                DepartmentGrant.user_company_id == membership.id,
                DepartmentGrant.department_id == department_id,
            )
        ).scalar_one_or_none()
        if grant is None:
            grant = DepartmentGrant(user_company_id=membership.id, department_id=department_id)
            self._session.add(grant)

        grant.permissions = [self.ensure_permission(p) for p in sorted(perms)]
        self._session.flush()
        return grant

    def revoke(self, user_id: int, company_id: int, department_id: int) -> bool:
        membership = self.membership(user_id, company_id)
        if membership is None:
            return False
        grant = self._session.execute(
            select(DepartmentGrant).where(
                DepartmentGrant.user_company_id == membership.id,
                DepartmentGrant.department_id == department_id,
            )
        ).scalar_one_or_none()
        if grant is None:
            return False
        self._session.delete(grant)
        self._session.flush()
        return True

    def remove_company(self, company_id: int) -> bool:
        """Delete a company; departments, bindings and grants go with it."""
        company = self._session.get(Company, company_id)
        if company is None:
            return False
        self._session.delete(company)
        self._session.flush()
        logger.info("Removed company id=%s with its departments, bindings and grants", company_id)
        return True

    def ensure_permission(self, permission: Permission) -> PermissionRow:
        """Return the row for (action, resource_kind), creating it if needed."""
        row = self._session.execute(
            select(PermissionRow).where(
                PermissionRow.action == permission.action,
                PermissionRow.resource_kind == permission.resource_kind,
            )
        ).scalar_one_or_none()
        if row is None:
            row = PermissionRow(action=permission.action, resource_kind=permission.resource_kind)
            self._session.add(row)
            self._session.flush()
        return row

    def _department_in(self, department_id: int, company_id: int) -> Department:
        department = self._session.get(Department, department_id)
        if department is None:
            raise ValueError(f"unknown department {department_id!r}")
        if department.company_id != company_id:
            raise ScopeMismatch(department_id, company_id, owner_company_id=department.company_id)
        return department


# ---- Flush-time scope checks ---------------------------------------------------------


def _related(session: Session, obj, relationship_name: str, fk_name: str, target):
    """
    The object ``obj`` points at through ``relationship_name``, as it will be flushed.

    A relationship assigned since the last flush wins; otherwise the current
    foreign key value is used, then whatever is already loaded.
    """

    state = inspect(obj)
    added = state.attrs[relationship_name].history.added
    if added and added[0] is not None:
        return added[0]
    fk = getattr(obj, fk_name)
    if fk is not None:
        return session.get(target, fk)
    return state.dict.get(relationship_name)


def _ensure_same_company(session: Session, department: Department | None, membership: UserCompany | None) -> None:
    if department is None or membership is None:
        return
    owner = _related(session, department, "company", "company_id", Company)
    bound = _related(session, membership, "company", "company_id", Company)
    if owner is None or bound is None:
        return
    if owner is not bound:
        raise ScopeMismatch(department.id, bound.id, owner_company_id=owner.id)


@event.listens_for(Session, "before_flush")
def _enforce_company_scope(session: Session, flush_context, instances) -> None:
    """
    Reject grants and bindings that reference a department of another company.

    Moving a department or a binding to another company re-checks the grants
    (and home departments) already attached to it.
    """

    with session.no_autoflush:
        for obj in list(session.new) + list(session.dirty):
            if isinstance(obj, DepartmentGrant):
                _ensure_same_company(
                    session,
                    _related(session, obj, "department", "department_id", Department),
                    _related(session, obj, "membership", "user_company_id", UserCompany),
                )
            elif isinstance(obj, UserCompany):
                _ensure_same_company(
                    session,
                    _related(session, obj, "home_department", "department_id", Department),
                    obj,
                )
                if _company_changed(obj):
                    for grant in _live(session, obj.grants):
                        _ensure_same_company(
                            session,
                            _related(session, grant, "department", "department_id", Department),
                            obj,
                        )
            elif isinstance(obj, Department) and _company_changed(obj):
                for grant in _live(session, obj.grants):
                    _ensure_same_company(
                        session,
                        obj,
                        _related(session, grant, "membership", "user_company_id", UserCompany),
                    )
                if obj.id is not None:
                    residents = session.scalars(select(UserCompany).where(UserCompany.department_id == obj.id))
                    for membership in _live(session, residents):
                        if _related(session, membership, "home_department", "department_id", Department) is obj:
                            _ensure_same_company(session, obj, membership)


def _company_changed(obj) -> bool:
    state = inspect(obj)
    if state.pending:
        return False
    return state.attrs.company_id.history.has_changes() or state.attrs.company.history.has_changes()


def _live(session: Session, objects: Iterable) -> list:
    return [o for o in objects if o not in session.deleted]
