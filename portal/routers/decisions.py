from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from portal.authz import DecisionEngine
from portal.db.grant_store import SqlGrantStore
from portal.db.session import get_db
from portal.models.tenancy import User
from portal.schemas.authz import DecisionOut, DecisionRequest
from portal.security.dependencies import get_current_user, get_decision_engine

router = APIRouter(prefix="/authz", tags=["authz"])


@router.post("/decisions", response_model=DecisionOut)
def check_access(
    body: DecisionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: DecisionEngine = Depends(get_decision_engine),
) -> DecisionOut:
    # Always evaluated for the caller; there is no way to ask about someone else.
    decision = engine.decide(
        user.id,
        body.company_id,
        body.department_id,
        body.resource_kind,
        body.action,
        grant_store=SqlGrantStore(db),
    )
    if not decision.allowed:
        return DecisionOut(allowed=False)
    return DecisionOut(allowed=True, matched_rule=decision.matched_rule.label)
