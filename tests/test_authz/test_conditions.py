"""Tests for typed rule conditions."""

import pytest

from portal.authz.conditions import (
    AllOf,
    AnyOf,
    AttributeRef,
    ConditionError,
    Contains,
    Equals,
    Literal,
    parse_condition,
)


ATTRS = {
    "principal.department_id": 1,
    "resource.department_id": 1,
    "principal.actions": frozenset({"read"}),
    "principal.permissions": frozenset({"read:employee_record"}),
    "request.action": "read",
    "company.id": 7,
}


def test_equals_attributes():
    cond = parse_condition({"equals": ["principal.department_id", "resource.department_id"]})
    assert cond == Equals(AttributeRef("principal.department_id"), AttributeRef("resource.department_id"))
    assert cond.evaluate(ATTRS) is True
    assert cond.evaluate({**ATTRS, "resource.department_id": 2}) is False


def test_equals_is_exact_value_equality():
    cond = parse_condition({"equals": ["company.id", {"value": 7}]})
    assert cond.evaluate(ATTRS) is True
    assert cond.evaluate({**ATTRS, "company.id": "7"}) is False


def test_missing_attribute_never_matches():
    cond = parse_condition({"equals": ["principal.department_id", "resource.department_id"]})
    assert cond.evaluate({**ATTRS, "principal.department_id": None, "resource.department_id": None}) is False


def test_contains_set_membership():
    cond = parse_condition({"contains": ["principal.actions", "request.action"]})
    assert isinstance(cond, Contains)
    assert cond.evaluate(ATTRS) is True
    assert cond.evaluate({**ATTRS, "request.action": "delete"}) is False
    assert cond.evaluate({**ATTRS, "principal.actions": frozenset()}) is False


def test_contains_literal_member():
    cond = parse_condition({"contains": ["principal.permissions", {"value": "read:employee_record"}]})
    assert cond.evaluate(ATTRS) is True


def test_contains_literal_collection():
    cond = parse_condition({"contains": [{"value": ["read", "update"]}, "request.action"]})
    assert cond == Contains(Literal(frozenset({"read", "update"})), AttributeRef("request.action"))
    assert cond.evaluate(ATTRS) is True


def test_contains_does_not_do_substring_matching():
    cond = parse_condition({"contains": [{"value": "reader"}, "request.action"]})
    assert cond.evaluate(ATTRS) is False


def test_all_and_any():
    same_dept = {"equals": ["principal.department_id", "resource.department_id"]}
    can_delete = {"contains": ["principal.actions", {"value": "delete"}]}

    both = parse_condition({"all": [same_dept, can_delete]})
    either = parse_condition({"any": [same_dept, can_delete]})

    assert isinstance(both, AllOf)
    assert isinstance(either, AnyOf)
    assert both.evaluate(ATTRS) is False
    assert either.evaluate(ATTRS) is True


def test_to_raw_round_trips_declarative_form():
    raw = {
        "all": [
            {"equals": ["principal.department_id", "resource.department_id"]},
            {"contains": ["principal.actions", {"value": "read"}]},
        ]
    }
    assert parse_condition(raw).to_raw() == raw


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"equals": ["principal.department_id"]},
        {"equals": ["principal.department_id", "resource.department_id"], "contains": []},
        {"matches": ["principal.role", {"value": "admin.*"}]},
        {"equals": ["principal.salary", {"value": 1}]},
        {"equals": ["principal.role", {"literal": "admin"}]},
        {"all": []},
        {"any": "principal.role"},
        ["equals", "a", "b"],
        {"contains": ["principal.actions", {"value": {"a": 1}}]},
        {"equals": ["company.id", {"value": [[1], 2]}]},
    ],
)
def test_parse_rejects_unknown_forms(raw):
    with pytest.raises(ConditionError):
        parse_condition(raw)
