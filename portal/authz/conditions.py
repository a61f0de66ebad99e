"""
Typed rule conditions.

Conditions are a closed set of predicates over the attribute bag built for a
single decision:

    equals:   [a, b]              exact value equality
    contains: [collection, item]  set membership
    all:      [cond, ...]         every nested condition holds
    any:      [cond, ...]         at least one nested condition holds

Operands are attribute paths (see ATTRIBUTE_PATHS) or literals written as a
mapping with a single ``value`` key:

    equals: [company.id, {value: 7}]

An attribute that resolves to None never satisfies a predicate, so rules
comparing a missing home department against a resource do not match.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any, Union

PRINCIPAL_ID = "principal.id"
PRINCIPAL_ROLE = "principal.role"
PRINCIPAL_DEPARTMENT_ID = "principal.department_id"
PRINCIPAL_PERMISSIONS = "principal.permissions"
PRINCIPAL_ACTIONS = "principal.actions"
RESOURCE_KIND = "resource.kind"
RESOURCE_DEPARTMENT_ID = "resource.department_id"
COMPANY_ID = "company.id"
REQUEST_ACTION = "request.action"

ATTRIBUTE_PATHS = frozenset(
    {
        PRINCIPAL_ID,
        PRINCIPAL_ROLE,
        PRINCIPAL_DEPARTMENT_ID,
        PRINCIPAL_PERMISSIONS,
        PRINCIPAL_ACTIONS,
        RESOURCE_KIND,
        RESOURCE_DEPARTMENT_ID,
        COMPANY_ID,
        REQUEST_ACTION,
    }
)


class ConditionError(ValueError):
    """Raised when a declarative condition does not match any known predicate."""


# ---- Operands ------------------------------------------------------------------------


@dataclass(frozen=True)
class AttributeRef:
    path: str

    def resolve(self, attributes: Mapping[str, Any]) -> Any:
        return attributes.get(self.path)

    def to_raw(self) -> str:
        return self.path


@dataclass(frozen=True)
class Literal:
    value: Any

    def resolve(self, attributes: Mapping[str, Any]) -> Any:
        return self.value

    def to_raw(self) -> dict[str, Any]:
        if isinstance(self.value, frozenset):
            return {"value": sorted(self.value, key=str)}
        return {"value": self.value}


Operand = Union[AttributeRef, Literal]


# ---- Predicates ----------------------------------------------------------------------


@dataclass(frozen=True)
class Equals:
    left: Operand
    right: Operand

    def evaluate(self, attributes: Mapping[str, Any]) -> bool:
        left = self.left.resolve(attributes)
        right = self.right.resolve(attributes)
        if left is None or right is None:
            return False
        return left == right

    def to_raw(self) -> dict[str, Any]:
        return {"equals": [self.left.to_raw(), self.right.to_raw()]}


@dataclass(frozen=True)
class Contains:
    collection: Operand
    member: Operand

    def evaluate(self, attributes: Mapping[str, Any]) -> bool:
        collection = self.collection.resolve(attributes)
        member = self.member.resolve(attributes)
        if member is None or collection is None:
            return False
        if isinstance(collection, (str, bytes)) or not isinstance(collection, Collection):
            return False
        return member in collection

    def to_raw(self) -> dict[str, Any]:
        return {"contains": [self.collection.to_raw(), self.member.to_raw()]}


@dataclass(frozen=True)
class AllOf:
    conditions: tuple[Condition, ...]

    def evaluate(self, attributes: Mapping[str, Any]) -> bool:
        return all(c.evaluate(attributes) for c in self.conditions)

    def to_raw(self) -> dict[str, Any]:
        return {"all": [c.to_raw() for c in self.conditions]}


@dataclass(frozen=True)
class AnyOf:
    conditions: tuple[Condition, ...]

    def evaluate(self, attributes: Mapping[str, Any]) -> bool:
        return any(c.evaluate(attributes) for c in self.conditions)

    def to_raw(self) -> dict[str, Any]:
        return {"any": [c.to_raw() for c in self.conditions]}


Condition = Union[Equals, Contains, AllOf, AnyOf]


# ---- Parsing -------------------------------------------------------------------------


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _parse_operand(raw: Any) -> Operand:
    if isinstance(raw, str):
        path = raw.strip()
        if path not in ATTRIBUTE_PATHS:
            raise ConditionError(f"unknown attribute {raw!r}; expected one of {sorted(ATTRIBUTE_PATHS)}")
        return AttributeRef(path)
    if isinstance(raw, Mapping):
        if set(raw.keys()) != {"value"}:
            raise ConditionError("literal operands must be a mapping with a single 'value' key")
        value = raw["value"]
        if isinstance(value, list):
            if not all(_is_scalar(item) for item in value):
                raise ConditionError("literal lists may only hold scalar values")
            value = frozenset(value)
        elif not _is_scalar(value):
            raise ConditionError(f"literal must be a scalar or a list of scalars, got {value!r}")
        return Literal(value)
    raise ConditionError(f"operand must be an attribute path or {{value: ...}}, got {raw!r}")


def _parse_pair(name: str, raw: Any) -> tuple[Operand, Operand]:
    if not isinstance(raw, list) or len(raw) != 2:
        raise ConditionError(f"{name!r} expects a list of exactly two operands")
    return _parse_operand(raw[0]), _parse_operand(raw[1])


def _parse_group(name: str, raw: Any) -> tuple[Condition, ...]:
    if not isinstance(raw, list) or not raw:
        raise ConditionError(f"{name!r} expects a non-empty list of conditions")
    return tuple(parse_condition(item) for item in raw)


def parse_condition(raw: Any) -> Condition:
    """
    Build a Condition from its declarative (YAML/JSON-decoded) form.

    Raises ConditionError for anything outside the closed predicate set.
    """

    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise ConditionError("condition must be a mapping with exactly one of: equals, contains, all, any")

    kind, body = next(iter(raw.items()))
    if kind == "equals":
        left, right = _parse_pair(kind, body)
        return Equals(left, right)
    if kind == "contains":
        collection, member = _parse_pair(kind, body)
        return Contains(collection, member)
    if kind == "all":
        return AllOf(_parse_group(kind, body))
    if kind == "any":
        return AnyOf(_parse_group(kind, body))
    raise ConditionError(f"unknown condition {kind!r}")
