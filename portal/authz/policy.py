"""
Policy set: ordered authorization rules and their declarative loader.

A rule binds one resource kind to a set of actions, a set of eligible roles,
an optional condition and an effect:

    policy:
      rules:
        - id: admin-read-own-department
          resource: employee_record
          actions: [read]
          roles: [admin]
          effect: allow
          condition:
            equals: [principal.department_id, resource.department_id]

Declaration order is significant: the decision engine takes the first rule
that matches, whatever its effect. Duplicate rules are kept as written.

Like the RBAC loader this replaces, the module is pure Python: no FastAPI
and no database.
"""

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .conditions import Condition, ConditionError, parse_condition
from .errors import MalformedRule, PolicyConfigError

logger = logging.getLogger(__name__)


class Effect(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Rule:
    """One loaded rule. ``index`` is its position in the declaration order."""

    index: int
    resource_kind: str
    actions: frozenset[str]
    roles: frozenset[str]
    effect: Effect
    condition: Condition | None = None
    id: str | None = None
    description: str | None = None

    @property
    def label(self) -> str:
        return self.id or f"rule[{self.index}]"

    def applies_to(self, resource_kind: str, action: str) -> bool:
        return self.resource_kind == resource_kind and action in self.actions

    def matches(self, attributes: Mapping[str, Any]) -> bool:
        """True when the rule has no condition or its condition holds."""
        if self.condition is None:
            return True
        return self.condition.evaluate(attributes)

    def to_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "id": self.id,
            "resource": self.resource_kind,
            "actions": sorted(self.actions),
            "roles": sorted(self.roles),
            "effect": self.effect.value,
            "condition": self.condition.to_raw() if self.condition is not None else None,
        }


class PolicySet:
    """
    Immutable, ordered collection of rules.

    Usage:
        policy = load_policy_set(Path("config/policy.yaml"))
        candidates = policy.match("employee_record", "read")
    """

    def __init__(self, rules: Sequence[Rule]) -> None:
        self._rules = tuple(rules)

        # Precompute resource kind -> rules, keeping declaration order.
        by_kind: dict[str, list[Rule]] = {}
        for rule in self._rules:
            by_kind.setdefault(rule.resource_kind, []).append(rule)
        self._by_kind = {kind: tuple(rules) for kind, rules in by_kind.items()}

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def resource_kinds(self) -> frozenset[str]:
        return frozenset(self._by_kind)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def match(self, resource_kind: str, action: str) -> tuple[Rule, ...]:
        """Rules for ``resource_kind`` whose actions include ``action``, in declaration order."""
        return tuple(rule for rule in self._by_kind.get(resource_kind, ()) if action in rule.actions)


# ---- Loader --------------------------------------------------------------------------


class RuleModel(BaseModel):
    """Declarative shape of a single rule, before structural checks."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    description: str | None = None
    resource: str
    actions: list[str]
    roles: list[str]
    effect: Effect
    condition: dict[str, Any] | None = None


def _clean_names(values: list[str]) -> frozenset[str]:
    return frozenset(v.strip() for v in values if v.strip())


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "rule"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def _build_rule(index: int, raw: Any) -> Rule:
    if not isinstance(raw, Mapping):
        raise MalformedRule(index, "rule must be a mapping")

    try:
        model = RuleModel.model_validate(dict(raw))
    except ValidationError as exc:
        raise MalformedRule(index, _summarize(exc)) from exc

    resource_kind = model.resource.strip()
    if not resource_kind:
        raise MalformedRule(index, "resource kind must not be blank")

    actions = _clean_names(model.actions)
    if not actions:
        raise MalformedRule(index, "actions must not be empty")

    roles = _clean_names(model.roles)
    if not roles:
        raise MalformedRule(index, "roles must not be empty")

    condition = None
    if model.condition is not None:
        try:
            condition = parse_condition(model.condition)
        except ConditionError as exc:
            raise MalformedRule(index, f"condition: {exc}") from exc

    return Rule(
        index=index,
        resource_kind=resource_kind,
        actions=actions,
        roles=roles,
        effect=model.effect,
        condition=condition,
        id=model.id.strip() if model.id and model.id.strip() else None,
        description=model.description,
    )


def parse_policy_set(raw_rules: Any) -> PolicySet:
    """
    Build a PolicySet from an already-decoded list of rule mappings.

    Fails with MalformedRule (carrying the offending index) on the first
    structurally invalid rule; no partial PolicySet is ever returned.
    """

    if not isinstance(raw_rules, list):
        raise PolicyConfigError("policy rules must be a list")

    rules = [_build_rule(index, raw) for index, raw in enumerate(raw_rules)]
    return PolicySet(rules)


def _decode(path: Path) -> Any:
    raw_text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(raw_text) if raw_text.strip() else {}
        return yaml.safe_load(raw_text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise PolicyConfigError(f"could not parse policy file {path}: {exc}") from exc


def load_policy_set(path: Path) -> PolicySet:
    """
    Load and validate a policy document (YAML, or JSON for ``*.json`` files).

    Expected shape:

        policy:
          rules:
            - resource: employee_record
              actions: [read]
              roles: [admin]
              effect: allow
    """

    raw = _decode(path)
    if not isinstance(raw, dict) or "policy" not in raw:
        raise PolicyConfigError(f"Missing top-level 'policy' key in policy file: {path}")

    section = raw["policy"] or {}
    if not isinstance(section, dict):
        raise PolicyConfigError("policy must be a mapping")

    raw_rules = section.get("rules")
    policy_set = parse_policy_set([] if raw_rules is None else raw_rules)
    logger.info("Loaded policy set rules=%d kinds=%s path=%s", len(policy_set), sorted(policy_set.resource_kinds), path)
    return policy_set
