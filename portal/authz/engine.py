"""
Decision engine: department-scoped, company-aware authorization.

Given a principal, a company, a department, a resource kind and an action:

1. Resolve the principal's role and department permissions with a single
   grant store read (ResolvedContext).
2. Take the policy rules for (resource kind, action), in declaration order.
3. Keep the rules whose roles include the resolved role.
4. Evaluate each rule's condition against the attribute bag.
5. The first rule that matches decides, allow or deny. No match: deny.

Resolution failures (no binding, department outside the company) never
escape as exceptions; they become deny decisions carrying the failure kind,
and are logged for audit.

This module has no FastAPI or SQLAlchemy dependency.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .context import attributes_to_dict, build_attributes
from .errors import NoBinding, ScopeMismatch, UnknownBinding
from .model import EntityId, ResolvedContext
from .policy import Effect, PolicySet, Rule
from .store import GrantStore

logger = logging.getLogger(__name__)


class DecisionReason(str, enum.Enum):
    ALLOW = "allow"
    EXPLICIT_DENY = "explicit_deny"
    DEFAULT_DENY = "default_deny"
    UNKNOWN_BINDING = "unknown_binding"
    SCOPE_MISMATCH = "scope_mismatch"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of one authorization check.

    ``matched_rule`` is None for default deny and for resolution failures.
    ``snapshot`` and ``attributes`` are what the rules were evaluated
    against; both are None when resolution failed. The attribute bag is
    derived from the snapshot, so it is left out of equality and hashing.
    """

    allowed: bool
    reason: DecisionReason
    resource_kind: str
    action: str
    matched_rule: Rule | None = None
    snapshot: ResolvedContext | None = None
    attributes: Mapping[str, Any] | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "allowed": self.allowed,
            "reason": self.reason.value,
            "resource_kind": self.resource_kind,
            "action": self.action,
            "matched_rule": self.matched_rule.to_dict() if self.matched_rule is not None else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "attributes": attributes_to_dict(self.attributes) if self.attributes is not None else None,
        }


class DecisionEngine:
    """
    Stateless evaluator over an immutable PolicySet.

    Usage:
        policy = load_policy_set(Path("config/policy.yaml"))
        engine = DecisionEngine(policy, grant_store=store)
        decision = engine.decide(user_id, company_id, department_id, "employee_record", "read")
    """

    def __init__(self, policy_set: PolicySet, grant_store: GrantStore | None = None) -> None:
        if not isinstance(policy_set, PolicySet):
            raise TypeError("DecisionEngine requires a loaded PolicySet")
        self._policy_set = policy_set
        self._grant_store = grant_store

    @property
    def policy_set(self) -> PolicySet:
        return self._policy_set

    # ---- Main decision API ----------------------------------------------------------

    def decide(
        self,
        principal_id: EntityId,
        company_id: EntityId,
        department_id: EntityId,
        resource_kind: str,
        action: str,
        grant_store: GrantStore | None = None,
    ) -> Decision:
        """
        Resolve the principal's context and evaluate the request against the policy set.

        ``grant_store`` overrides the engine's store for this call, e.g. a
        store bound to the current request's database session.
        """

        store = grant_store if grant_store is not None else self._grant_store
        if store is None:
            raise RuntimeError("DecisionEngine.decide needs a grant store")

        try:
            context = store.resolve(principal_id, company_id, department_id)
        except NoBinding as exc:
            failure = UnknownBinding(principal_id, company_id)
            logger.info("Authz denied reason=%s %s (%s)", DecisionReason.UNKNOWN_BINDING.value, failure, exc)
            return Decision(
                allowed=False,
                reason=DecisionReason.UNKNOWN_BINDING,
                resource_kind=resource_kind,
                action=action,
            )
        except ScopeMismatch as exc:
            logger.warning(
                "Authz denied reason=%s principal=%r %s",
                DecisionReason.SCOPE_MISMATCH.value,
                principal_id,
                exc,
            )
            return Decision(
                allowed=False,
                reason=DecisionReason.SCOPE_MISMATCH,
                resource_kind=resource_kind,
                action=action,
            )

        return self.evaluate(context, resource_kind, action)

    def evaluate(self, context: ResolvedContext, resource_kind: str, action: str) -> Decision:
        """Pure evaluation over an already resolved context."""

        attributes = build_attributes(context, resource_kind, action)
        candidates = [r for r in self._policy_set.match(resource_kind, action) if context.role in r.roles]

        for rule in candidates:
            if not rule.matches(attributes):
                continue
            allowed = rule.effect is Effect.ALLOW
            reason = DecisionReason.ALLOW if allowed else DecisionReason.EXPLICIT_DENY
            logger.debug(
                "Authz %s principal=%r company=%r department=%r role=%s %s:%s rule=%s",
                reason.value,
                context.principal_id,
                context.company_id,
                context.department_id,
                context.role,
                action,
                resource_kind,
                rule.label,
            )
            return Decision(
                allowed=allowed,
                reason=reason,
                resource_kind=resource_kind,
                action=action,
                matched_rule=rule,
                snapshot=context,
                attributes=attributes,
            )

        logger.debug(
            "Authz default_deny principal=%r company=%r department=%r role=%s %s:%s candidates=%d",
            context.principal_id,
            context.company_id,
            context.department_id,
            context.role,
            action,
            resource_kind,
            len(candidates),
        )
        return Decision(
            allowed=False,
            reason=DecisionReason.DEFAULT_DENY,
            resource_kind=resource_kind,
            action=action,
            snapshot=context,
            attributes=attributes,
        )

    def is_allowed(
        self,
        principal_id: EntityId,
        company_id: EntityId,
        department_id: EntityId,
        resource_kind: str,
        action: str,
    ) -> bool:
        return self.decide(principal_id, company_id, department_id, resource_kind, action).allowed
