"""
Credit ledger.

A user either has an active subscription (unlimited use) or spends one credit per created
document. The balance lives on `identity_user.credits` and is only ever changed here,
through single UPDATE statements so that concurrent ingestions cannot drive it below zero.
"""

from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tripdochub.core.logging import get_logger, log_event
from tripdochub.core.models import as_utc, utcnow
from tripdochub.modules.credits.models import PromoCode, PromoRedemption
from tripdochub.modules.credits.schemas import CreditBalance
from tripdochub.modules.identity.models import User

logger = get_logger(__name__)


def _get_user(session: Session, user_id: uuid.UUID) -> User:
    user = session.scalar(select(User).where(User.id == user_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def has_active_subscription(user: User) -> bool:
    expires_at = as_utc(user.subscription_expires_at)
    return expires_at is not None and expires_at > utcnow()


def get_balance(session: Session, *, user_id: uuid.UUID) -> CreditBalance:
    user = _get_user(session, user_id)
    return CreditBalance(
        credits=user.credits,
        has_active_subscription=has_active_subscription(user),
        subscription_expires_at=as_utc(user.subscription_expires_at),
    )


def can_consume(session: Session, *, user_id: uuid.UUID) -> bool:
    user = _get_user(session, user_id)
    return has_active_subscription(user) or user.credits > 0


def deduct(session: Session, *, user_id: uuid.UUID, commit: bool = True) -> bool:
    """
    Spend one credit. Returns False (and changes nothing) when the balance is empty.

    Subscribers are not charged. With `commit=False` the decrement joins the caller's
    transaction, so it lands or rolls back together with the document it pays for.
    """
    user = _get_user(session, user_id)
    if has_active_subscription(user):
        return True

    result = session.execute(
        update(User)
        .where(User.id == user_id, User.credits > 0)
        .values(credits=User.credits - 1)
        .execution_options(synchronize_session=False)
    )
    session.expire(user, ["credits"])
    if result.rowcount != 1:
        log_event(logger, "credits.deduct.refused", user_id=str(user_id))
        return False
    if commit:
        session.commit()
    return True


def add(session: Session, *, user_id: uuid.UUID, amount: int, commit: bool = True) -> None:
    if amount < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="amount must not be negative"
        )
    user = _get_user(session, user_id)
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(credits=User.credits + amount)
        .execution_options(synchronize_session=False)
    )
    session.expire(user, ["credits"])
    if commit:
        session.commit()
    log_event(logger, "credits.added", user_id=str(user_id), amount=amount)


def redeem_promo_code(session: Session, *, user_id: uuid.UUID, code: str) -> int:
    normalized = (code or "").strip().upper()
    promo = session.scalar(select(PromoCode).where(PromoCode.code == normalized))
    expires_at = as_utc(promo.expires_at) if promo else None
    if not promo or not promo.is_active or (expires_at is not None and expires_at <= utcnow()):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invalid promo code")

    already = session.scalar(
        select(PromoRedemption.id).where(
            PromoRedemption.user_id == user_id, PromoRedemption.promo_code_id == promo.id
        )
    )
    if already:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Promo code already redeemed"
        )

    claimed = session.execute(
        update(PromoCode)
        .where(
            PromoCode.id == promo.id,
            PromoCode.is_active.is_(True),
            or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
        )
        .values(current_uses=PromoCode.current_uses + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Promo code usage limit reached"
        )

    credits = promo.credits
    session.add(PromoRedemption(user_id=user_id, promo_code_id=promo.id, credits_added=credits))
    add(session, user_id=user_id, amount=credits, commit=False)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Promo code already redeemed"
        ) from e

    log_event(
        logger, "credits.promo.redeemed", user_id=str(user_id), code=normalized, credits=credits
    )
    return credits
