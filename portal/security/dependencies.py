from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, HTTPException, Path, Request, status
from sqlalchemy.orm import Session

from portal.authz import Decision, DecisionEngine
from portal.db.base import MAX_ROW_ID
from portal.db.grant_store import SqlGrantStore
from portal.db.session import get_db
from portal.models.tenancy import User
from portal.security.auth import extract_user_id, load_user
from portal.settings import Settings

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("Settings not loaded. Did app startup run?")
    return settings


def get_decision_engine(request: Request) -> DecisionEngine:
    engine = getattr(request.app.state, "decision_engine", None)
    if engine is None:
        raise RuntimeError("Policy set not loaded. Did app startup run?")
    return engine


def get_current_user(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
) -> User:
    user_id = extract_user_id(request, settings)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    user = load_user(db, user_id)
    request.state.user = user
    return user


def require_permission(resource_kind: str, action: str) -> Callable[..., Decision]:
    """
    Dependency factory guarding a company/department-scoped route.

    The route must declare ``company_id`` and ``department_id`` path
    parameters. Every deny, whatever its internal reason (no binding,
    department outside the company, explicit or default deny), is the same
    403 for the caller; the reason is logged by the decision engine.
    """

    def _require_permission(
        request: Request,
        company_id: int = Path(ge=1, le=MAX_ROW_ID),
        department_id: int = Path(ge=1, le=MAX_ROW_ID),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        engine: DecisionEngine = Depends(get_decision_engine),
    ) -> Decision:
        decision = engine.decide(
            user.id,
            company_id,
            department_id,
            resource_kind,
            action,
            grant_store=SqlGrantStore(db),
        )
        request.state.decision = decision
        if not decision.allowed:
            logger.info(
                "Forbidden user=%s %s:%s company=%s department=%s path=%s",
                user.id,
                action,
                resource_kind,
                company_id,
                department_id,
                request.url.path,
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return decision

    return _require_permission
