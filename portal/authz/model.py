"""
Value types shared by the policy engine and the grant stores.

Everything here is frozen: stores hand these out as snapshots and the engine
only ever reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .errors import ScopeMismatch

EntityId = Union[int, str]


@dataclass(frozen=True, order=True)
class Permission:
    """An (action, resource kind) pair, e.g. ("read", "employee_record")."""

    action: str
    resource_kind: str

    def __str__(self) -> str:
        return f"{self.action}:{self.resource_kind}"

    @classmethod
    def parse(cls, value: str) -> Permission:
        """Build a permission from its ``action:resource_kind`` string form."""
        action, sep, kind = value.partition(":")
        if not sep or not action.strip() or not kind.strip():
            raise ValueError(f"permission must look like 'action:resource_kind', got {value!r}")
        return cls(action=action.strip(), resource_kind=kind.strip())


@dataclass(frozen=True)
class Company:
    id: EntityId
    name: str


@dataclass(frozen=True)
class Department:
    id: EntityId
    name: str
    company_id: EntityId


@dataclass(frozen=True)
class Binding:
    """A principal's role inside one company."""

    principal_id: EntityId
    company_id: EntityId
    role: str
    home_department_id: EntityId | None = None


@dataclass(frozen=True)
class Grant:
    """
    Department-scoped permissions held through a binding.

    Construction fails with ScopeMismatch when the department belongs to a
    different company than the binding.
    """

    binding: Binding
    department: Department
    permissions: frozenset[Permission] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.department.company_id != self.binding.company_id:
            raise ScopeMismatch(
                self.department.id,
                self.binding.company_id,
                owner_company_id=self.department.company_id,
            )
        object.__setattr__(self, "permissions", frozenset(self.permissions))


@dataclass(frozen=True)
class ResolvedContext:
    """
    Everything the decision engine needs about one principal for one query.

    Produced by a single grant store read so role and permissions always come
    from the same snapshot.
    """

    principal_id: EntityId
    company_id: EntityId
    department_id: EntityId
    role: str
    permissions: frozenset[Permission] = frozenset()
    home_department_id: EntityId | None = None

    def actions_for(self, resource_kind: str) -> frozenset[str]:
        """Actions granted in this department on the given resource kind."""
        return frozenset(p.action for p in self.permissions if p.resource_kind == resource_kind)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "principal_id": self.principal_id,
            "company_id": self.company_id,
            "department_id": self.department_id,
            "role": self.role,
            "home_department_id": self.home_department_id,
            "permissions": sorted(str(p) for p in self.permissions),
        }
