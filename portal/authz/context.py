"""Attribute bag assembled from a resolved context for one decision."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from . import conditions as attrs
from .model import ResolvedContext


def build_attributes(context: ResolvedContext, resource_kind: str, action: str) -> Mapping[str, Any]:
    """
    Return the read-only attribute bag conditions are evaluated against.

    ``resource.department_id`` is the department the query targets;
    ``principal.department_id`` is the principal's home department in the
    company (None when the binding has none).
    """

    return MappingProxyType(
        {
            attrs.PRINCIPAL_ID: context.principal_id,
            attrs.PRINCIPAL_ROLE: context.role,
            attrs.PRINCIPAL_DEPARTMENT_ID: context.home_department_id,
            attrs.PRINCIPAL_PERMISSIONS: frozenset(str(p) for p in context.permissions),
            attrs.PRINCIPAL_ACTIONS: context.actions_for(resource_kind),
            attrs.RESOURCE_KIND: resource_kind,
            attrs.RESOURCE_DEPARTMENT_ID: context.department_id,
            attrs.COMPANY_ID: context.company_id,
            attrs.REQUEST_ACTION: action,
        }
    )


def attributes_to_dict(attributes: Mapping[str, Any]) -> dict[str, object]:
    """JSON-friendly copy of an attribute bag (sets become sorted lists)."""
    out: dict[str, object] = {}
    for key, value in attributes.items():
        if isinstance(value, (set, frozenset)):
            out[key] = sorted(value, key=str)
        else:
            out[key] = value
    return out
