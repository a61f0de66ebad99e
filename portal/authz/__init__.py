"""
Department-scoped authorization core.

This package has no dependency on other portal packages (portal.db,
portal.security, etc.). Load a PolicySet once, then ask a DecisionEngine
for decisions against any GrantStore.
"""

from .conditions import ATTRIBUTE_PATHS, parse_condition
from .engine import Decision, DecisionEngine, DecisionReason
from .errors import AuthzError, MalformedRule, NoBinding, PolicyConfigError, ScopeMismatch, UnknownBinding
from .model import Binding, Company, Department, Grant, Permission, ResolvedContext
from .policy import Effect, PolicySet, Rule, load_policy_set, parse_policy_set
from .store import GrantStore, InMemoryGrantStore

__all__ = [
    "ATTRIBUTE_PATHS",
    "AuthzError",
    "Binding",
    "Company",
    "Decision",
    "DecisionEngine",
    "DecisionReason",
    "Department",
    "Effect",
    "Grant",
    "GrantStore",
    "InMemoryGrantStore",
    "MalformedRule",
    "NoBinding",
    "Permission",
    "PolicyConfigError",
    "PolicySet",
    "ResolvedContext",
    "Rule",
    "ScopeMismatch",
    "UnknownBinding",
    "load_policy_set",
    "parse_condition",
    "parse_policy_set",
]
