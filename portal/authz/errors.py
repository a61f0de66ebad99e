"""Error taxonomy for the authorization core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .model import EntityId


class AuthzError(Exception):
    """Base class for authorization core errors."""


class UnknownBinding(AuthzError):
    """The principal holds no role in the requested company."""

    def __init__(self, principal_id: EntityId, company_id: EntityId) -> None:
        super().__init__(f"principal {principal_id!r} has no role in company {company_id!r}")
        self.principal_id = principal_id
        self.company_id = company_id


class NoBinding(AuthzError):
    """Raised by a grant store when a (principal, company) binding is absent."""

    def __init__(self, principal_id: EntityId, company_id: EntityId) -> None:
        super().__init__(f"no binding for principal {principal_id!r} in company {company_id!r}")
        self.principal_id = principal_id
        self.company_id = company_id


class ScopeMismatch(AuthzError):
    """A department was used outside of the company that owns it."""

    def __init__(self, department_id: EntityId, company_id: EntityId, owner_company_id: EntityId | None = None) -> None:
        detail = f"department {department_id!r} does not belong to company {company_id!r}"
        if owner_company_id is not None:
            detail += f" (owned by {owner_company_id!r})"
        super().__init__(detail)
        self.department_id = department_id
        self.company_id = company_id
        self.owner_company_id = owner_company_id


class MalformedRule(AuthzError, ValueError):
    """Raised when a policy rule is structurally invalid at load time."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"rule[{index}]: {reason}")
        self.index = index
        self.reason = reason


class PolicyConfigError(AuthzError, ValueError):
    """Raised when a policy document is unreadable or has the wrong overall shape."""
