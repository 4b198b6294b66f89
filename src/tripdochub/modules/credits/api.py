from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tripdochub.api.deps import get_current_user
from tripdochub.core.db import db_session
from tripdochub.modules.credits.schemas import CreditBalance, RedeemIn, RedeemOut
from tripdochub.modules.credits.service import get_balance, redeem_promo_code
from tripdochub.modules.identity.models import User

router = APIRouter(tags=["credits"])


@router.get("/credits", response_model=CreditBalance)
def get_credits_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> CreditBalance:
    return get_balance(session, user_id=user.id)


@router.post("/credits/redeem", response_model=RedeemOut)
def redeem_endpoint(
    payload: RedeemIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> RedeemOut:
    added = redeem_promo_code(session, user_id=user.id, code=payload.code)
    return RedeemOut(credits_added=added, balance=get_balance(session, user_id=user.id))
