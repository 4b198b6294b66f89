from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tripdochub.api.deps import get_current_user
from tripdochub.core.db import db_session
from tripdochub.modules.identity.models import User
from tripdochub.modules.identity.schemas import ForwardingEmailOut, PushTokenIn, UserOut
from tripdochub.modules.identity.service import set_push_token

router = APIRouter(tags=["identity"])


@router.get("/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(user, from_attributes=True)


@router.get("/users/me/forwarding-email", response_model=ForwardingEmailOut)
def forwarding_email(user: User = Depends(get_current_user)) -> ForwardingEmailOut:
    return ForwardingEmailOut(email=user.forwarding_email)


@router.put("/users/me/push-token", response_model=UserOut)
def register_push_token(
    payload: PushTokenIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> UserOut:
    updated = set_push_token(session, user=user, token=payload.token)
    return UserOut.model_validate(updated, from_attributes=True)
