from __future__ import annotations

from fastapi import APIRouter, Depends

from portal.models.tenancy import User
from portal.schemas.tenancy import UserOut
from portal.security.dependencies import get_current_user

router = APIRouter(tags=["me"])


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> User:
    return user
