from __future__ import annotations

from fastapi import APIRouter, Depends

from portal.authz import DecisionEngine
from portal.security.dependencies import get_decision_engine

router = APIRouter(tags=["health"])


@router.get("/health")
def health(engine: DecisionEngine = Depends(get_decision_engine)) -> dict[str, object]:
    return {"status": "ok", "policy_rules": len(engine.policy_set)}
