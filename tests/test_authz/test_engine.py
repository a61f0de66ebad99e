"""Tests for the decision engine."""

import json
import logging

import pytest

from portal.authz.engine import Decision, DecisionEngine, DecisionReason
from portal.authz.errors import MalformedRule
from portal.authz.model import Permission, ResolvedContext
from portal.authz.policy import parse_policy_set
from portal.authz.store import InMemoryGrantStore

SAME_DEPARTMENT = {"equals": ["principal.department_id", "resource.department_id"]}


def _rule(**overrides):
    rule = {
        "resource": "employee_record",
        "actions": ["read"],
        "roles": ["admin"],
        "effect": "allow",
    }
    rule.update(overrides)
    return rule


@pytest.fixture
def store():
    s = InMemoryGrantStore()
    s.add_company("C1", "Acme")
    s.add_company("C2", "Globex")
    s.add_department("D1", "HR", "C1")
    s.add_department("D2", "IT", "C1")
    s.add_department("D3", "Finance", "C2")

    s.bind("P", "C1", "admin", home_department_id="D1")
    s.grant("P", "C1", "D1", [Permission("read", "employee_record")])
    s.bind("P", "C2", "user")
    return s


@pytest.fixture
def engine(store):
    policy = parse_policy_set([_rule(id="admin-read-same-department", condition=SAME_DEPARTMENT)])
    return DecisionEngine(policy, grant_store=store)


class CountingStore:
    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def resolve(self, principal_id, company_id, department_id):
        self.calls += 1
        return self.inner.resolve(principal_id, company_id, department_id)


def test_scenario_a_same_department_is_allowed(engine):
    decision = engine.decide("P", "C1", "D1", "employee_record", "read")

    assert decision.allowed is True
    assert decision.reason is DecisionReason.ALLOW
    assert decision.matched_rule.id == "admin-read-same-department"
    assert decision.snapshot.role == "admin"
    assert decision.snapshot.permissions == {Permission("read", "employee_record")}
    assert decision.attributes["resource.department_id"] == "D1"
    assert decision.attributes["principal.department_id"] == "D1"
    assert decision.attributes["principal.actions"] == {"read"}
    assert decision.attributes["company.id"] == "C1"


def test_scenario_b_other_department_is_default_denied(engine):
    decision = engine.decide("P", "C1", "D2", "employee_record", "read")

    assert decision.allowed is False
    assert decision.reason is DecisionReason.DEFAULT_DENY
    assert decision.matched_rule is None
    assert decision.snapshot.permissions == frozenset()


def test_scenario_c_user_without_delete_rule_is_denied(engine):
    decision = engine.decide("P", "C2", "D3", "employee_record", "delete")

    assert decision.allowed is False
    assert decision.reason is DecisionReason.DEFAULT_DENY
    assert decision.snapshot.role == "user"


@pytest.mark.parametrize("principal", ["nobody", "P2", 42])
def test_no_binding_is_denied_as_unknown_binding(engine, principal):
    decision = engine.decide(principal, "C1", "D1", "employee_record", "read")

    assert decision.allowed is False
    assert decision.reason is DecisionReason.UNKNOWN_BINDING
    assert decision.matched_rule is None
    assert decision.snapshot is None


def test_department_outside_company_is_denied_as_scope_mismatch(engine):
    decision = engine.decide("P", "C1", "D3", "employee_record", "read")

    assert decision.allowed is False
    assert decision.reason is DecisionReason.SCOPE_MISMATCH


def test_resolution_failures_are_logged_with_their_kind(engine, caplog):
    with caplog.at_level(logging.INFO, logger="portal.authz.engine"):
        engine.decide("nobody", "C1", "D1", "employee_record", "read")
        engine.decide("P", "C1", "D3", "employee_record", "read")

    messages = [r.getMessage() for r in caplog.records]
    assert any("unknown_binding" in m for m in messages)
    assert any("scope_mismatch" in m for m in messages)


@pytest.mark.parametrize("first, expected", [("allow", True), ("deny", False)])
def test_first_matching_rule_wins_regardless_of_effect(store, first, expected):
    second = "deny" if first == "allow" else "allow"
    policy = parse_policy_set([_rule(id="r1", effect=first), _rule(id="r2", effect=second)])
    engine = DecisionEngine(policy, grant_store=store)

    decision = engine.decide("P", "C1", "D1", "employee_record", "read")

    assert decision.allowed is expected
    assert decision.matched_rule.id == "r1"


def test_explicit_deny_reason(store):
    engine = DecisionEngine(parse_policy_set([_rule(id="no", effect="deny")]), grant_store=store)
    decision = engine.decide("P", "C1", "D1", "employee_record", "read")
    assert decision.allowed is False
    assert decision.reason is DecisionReason.EXPLICIT_DENY
    assert decision.matched_rule.id == "no"


def test_non_matching_condition_falls_through_to_later_rule(store):
    policy = parse_policy_set(
        [
            _rule(id="same-dept-deny", effect="deny", condition=SAME_DEPARTMENT),
            _rule(id="fallback-allow"),
        ]
    )
    engine = DecisionEngine(policy, grant_store=store)

    assert engine.decide("P", "C1", "D1", "employee_record", "read").matched_rule.id == "same-dept-deny"
    assert engine.decide("P", "C1", "D2", "employee_record", "read").matched_rule.id == "fallback-allow"


def test_rules_for_other_roles_are_skipped(store):
    policy = parse_policy_set([_rule(id="members", roles=["member"], effect="deny"), _rule(id="admins")])
    engine = DecisionEngine(policy, grant_store=store)

    decision = engine.decide("P", "C1", "D1", "employee_record", "read")

    assert decision.matched_rule.id == "admins"


def test_role_only_rule_matches_with_empty_permissions(store):
    engine = DecisionEngine(parse_policy_set([_rule(id="role-only")]), grant_store=store)

    decision = engine.decide("P", "C1", "D2", "employee_record", "read")

    assert decision.allowed is True
    assert decision.snapshot.permissions == frozenset()


def test_permission_condition_uses_department_grants(store):
    condition = {"contains": ["principal.actions", "request.action"]}
    engine = DecisionEngine(parse_policy_set([_rule(condition=condition)]), grant_store=store)

    assert engine.is_allowed("P", "C1", "D1", "employee_record", "read") is True
    assert engine.is_allowed("P", "C1", "D2", "employee_record", "read") is False


def test_decide_is_idempotent(engine):
    first = engine.decide("P", "C1", "D1", "employee_record", "read")
    second = engine.decide("P", "C1", "D1", "employee_record", "read")
    assert first == second

    denied_first = engine.decide("P", "C1", "D2", "employee_record", "read")
    denied_second = engine.decide("P", "C1", "D2", "employee_record", "read")
    assert denied_first == denied_second


def test_decide_reads_the_store_once_and_never_writes(engine, store):
    counting = CountingStore(store)
    before = store.grants_for("P", "C1")

    engine.decide("P", "C1", "D1", "employee_record", "read", grant_store=counting)

    assert counting.calls == 1
    assert store.grants_for("P", "C1") == before


def test_evaluate_is_pure_over_a_snapshot(engine):
    ctx = ResolvedContext(
        principal_id="X",
        company_id="C9",
        department_id="D9",
        role="admin",
        home_department_id="D9",
    )
    decision = engine.evaluate(ctx, "employee_record", "read")
    assert decision.allowed is True
    assert decision.snapshot is ctx


def test_decision_to_dict_is_json_serializable(engine):
    decision = engine.decide("P", "C1", "D1", "employee_record", "read")
    payload = decision.to_dict()

    assert json.loads(json.dumps(payload)) == payload
    assert payload["allowed"] is True
    assert payload["reason"] == "allow"
    assert payload["matched_rule"]["id"] == "admin-read-same-department"
    assert payload["snapshot"]["permissions"] == ["read:employee_record"]
    assert payload["attributes"]["principal.actions"] == ["read"]


def test_denied_decision_to_dict(engine):
    payload = engine.decide("nobody", "C1", "D1", "employee_record", "read").to_dict()
    assert payload["allowed"] is False
    assert payload["reason"] == "unknown_binding"
    assert payload["snapshot"] is None


def test_engine_requires_a_loaded_policy_set():
    with pytest.raises(TypeError):
        DecisionEngine(None)  # type: ignore[arg-type]


def test_scenario_d_malformed_policy_leaves_no_policy_set():
    policy = None
    with pytest.raises(MalformedRule) as exc_info:
        policy = parse_policy_set([_rule(), _rule(actions=[])])
    assert exc_info.value.index == 1
    assert policy is None


def test_decide_without_store_is_a_programming_error():
    engine = DecisionEngine(parse_policy_set([_rule()]))
    with pytest.raises(RuntimeError):
        engine.decide("P", "C1", "D1", "employee_record", "read")


def test_decision_is_frozen(engine):
    decision = engine.decide("P", "C1", "D1", "employee_record", "read")
    assert isinstance(decision, Decision)
    with pytest.raises(AttributeError):
        decision.allowed = False  # type: ignore[misc]


def test_decisions_are_hashable(engine):
    allowed = engine.decide("P", "C1", "D1", "employee_record", "read")
    again = engine.decide("P", "C1", "D1", "employee_record", "read")
    denied = engine.decide("P", "C1", "D2", "employee_record", "read")
    failed = engine.decide("nobody", "C1", "D1", "employee_record", "read")

    assert hash(allowed) == hash(again)
    assert len({allowed, again, denied, failed}) == 3
