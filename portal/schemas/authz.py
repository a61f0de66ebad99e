from __future__ import annotations

from pydantic import BaseModel, Field

from portal.db.base import MAX_ROW_ID


class DecisionRequest(BaseModel):
    company_id: int = Field(ge=1, le=MAX_ROW_ID)
    department_id: int = Field(ge=1, le=MAX_ROW_ID)
    resource_kind: str = Field(min_length=1)
    action: str = Field(min_length=1)


class DecisionOut(BaseModel):
    """
    What the caller learns about a decision.

    Denials never say why: a missing binding, a department outside the
    company and a plain policy deny all look the same.
    """

    allowed: bool
    matched_rule: str | None = None
