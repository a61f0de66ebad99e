"""
Grant stores: the read side the decision engine consumes, plus an in-memory
implementation for embedding and tests.

The SQLAlchemy-backed store lives in ``portal.db.grant_store`` and honors
the same contract.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, Union

from .errors import NoBinding, ScopeMismatch
from .model import Binding, Company, Department, EntityId, Grant, Permission, ResolvedContext

logger = logging.getLogger(__name__)

PermissionLike = Union[Permission, str]


class GrantStore(Protocol):
    """Read contract for the decision engine."""

    def resolve(self, principal_id: EntityId, company_id: EntityId, department_id: EntityId) -> ResolvedContext:
        """
        Return the principal's role and department-scoped permissions in one read.

        Raises NoBinding if the principal has no role in the company and
        ScopeMismatch if the department does not belong to the company. A
        binding without a grant for the department resolves to an empty
        permission set.
        """
        ...


def to_permissions(values: Iterable[PermissionLike]) -> frozenset[Permission]:
    """Accept Permission objects or ``action:resource_kind`` strings."""
    return frozenset(v if isinstance(v, Permission) else Permission.parse(v) for v in values)


class InMemoryGrantStore:
    """
    Thread-safe in-memory grant store.

    Writes and reads share one lock, so every resolve() observes a single
    consistent snapshot of bindings and grants.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._companies: dict[EntityId, Company] = {}
        self._departments: dict[EntityId, Department] = {}
        self._bindings: dict[tuple[EntityId, EntityId], Binding] = {}
        self._grants: dict[tuple[EntityId, EntityId, EntityId], Grant] = {}

    # ---- Administrative writes ------------------------------------------------------

    def add_company(self, company_id: EntityId, name: str) -> Company:
        with self._lock:
            if company_id in self._companies:
                raise ValueError(f"company {company_id!r} already exists")
            company = Company(id=company_id, name=name)
            self._companies[company_id] = company
            return company

    def add_department(self, department_id: EntityId, name: str, company_id: EntityId) -> Department:
        with self._lock:
            if company_id not in self._companies:
                raise ValueError(f"unknown company {company_id!r}")
            if department_id in self._departments:
                raise ValueError(f"department {department_id!r} already exists")
            department = Department(id=department_id, name=name, company_id=company_id)
            self._departments[department_id] = department
            return department

    def bind(
        self,
        principal_id: EntityId,
        company_id: EntityId,
        role: str,
        home_department_id: EntityId | None = None,
    ) -> Binding:
        """Create or update the principal's role (and home department) in a company."""
        role = role.strip()
        if not role:
            raise ValueError("role must not be blank")
        with self._lock:
            if company_id not in self._companies:
                raise ValueError(f"unknown company {company_id!r}")
            if home_department_id is not None:
                self._department_in(home_department_id, company_id)
            binding = Binding(
                principal_id=principal_id,
                company_id=company_id,
                role=role,
                home_department_id=home_department_id,
            )
            self._bindings[(principal_id, company_id)] = binding
            # Grants hold the binding by value; keep them pointing at the current one.
            for key, grant in list(self._grants.items()):
                if key[:2] == (principal_id, company_id):
                    self._grants[key] = Grant(binding=binding, department=grant.department, permissions=grant.permissions)
            return binding

    def unbind(self, principal_id: EntityId, company_id: EntityId) -> bool:
        """Remove a binding together with every grant made through it."""
        with self._lock:
            removed = self._bindings.pop((principal_id, company_id), None)
            for key in [k for k in self._grants if k[:2] == (principal_id, company_id)]:
                del self._grants[key]
            return removed is not None

    def grant(
        self,
        principal_id: EntityId,
        company_id: EntityId,
        department_id: EntityId,
        permissions: Iterable[PermissionLike],
    ) -> Grant:
        """
        Create or replace the permission set a binding holds in a department.

        Raises ScopeMismatch (and stores nothing) when the department belongs
        to another company.
        """

        perms = to_permissions(permissions)
        with self._lock:
            binding = self._bindings.get((principal_id, company_id))
            if binding is None:
                raise NoBinding(principal_id, company_id)
            department = self._departments.get(department_id)
            if department is None:
                raise ValueError(f"unknown department {department_id!r}")
            grant = Grant(binding=binding, department=department, permissions=perms)
            self._grants[(principal_id, company_id, department_id)] = grant
            return grant

    def revoke(self, principal_id: EntityId, company_id: EntityId, department_id: EntityId) -> bool:
        with self._lock:
            return self._grants.pop((principal_id, company_id, department_id), None) is not None

    def remove_company(self, company_id: EntityId) -> bool:
        """Delete a company and everything scoped to it."""
        with self._lock:
            if self._companies.pop(company_id, None) is None:
                return False
            self._departments = {k: d for k, d in self._departments.items() if d.company_id != company_id}
            self._bindings = {k: b for k, b in self._bindings.items() if k[1] != company_id}
            self._grants = {k: g for k, g in self._grants.items() if k[1] != company_id}
            logger.info("Removed company %r and its departments, bindings and grants", company_id)
            return True

    # ---- Reads ----------------------------------------------------------------------

    def grants_for(self, principal_id: EntityId, company_id: EntityId) -> tuple[Grant, ...]:
        with self._lock:
            return tuple(g for k, g in self._grants.items() if k[:2] == (principal_id, company_id))

    def resolve(self, principal_id: EntityId, company_id: EntityId, department_id: EntityId) -> ResolvedContext:
        with self._lock:
            binding = self._bindings.get((principal_id, company_id))
            if binding is None:
                raise NoBinding(principal_id, company_id)
            self._department_in(department_id, company_id)
            grant = self._grants.get((principal_id, company_id, department_id))
            return ResolvedContext(
                principal_id=principal_id,
                company_id=company_id,
                department_id=department_id,
                role=binding.role,
                permissions=grant.permissions if grant is not None else frozenset(),
                home_department_id=binding.home_department_id,
            )

    def _department_in(self, department_id: EntityId, company_id: EntityId) -> Department:
        department = self._departments.get(department_id)
        if department is None or department.company_id != company_id:
            raise ScopeMismatch(
                department_id,
                company_id,
                owner_company_id=department.company_id if department is not None else None,
            )
        return department
