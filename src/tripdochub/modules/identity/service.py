from __future__ import annotations

import secrets
import string
import uuid
from email.utils import getaddresses

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from tripdochub.core.config import settings
from tripdochub.modules.identity.models import User

_FORWARDING_ALPHABET = string.ascii_lowercase + string.digits


def generate_forwarding_email() -> str:
    suffix = "".join(secrets.choice(_FORWARDING_ALPHABET) for _ in range(8))
    return f"trip-{suffix}@{settings.forwarding_email_domain}"


def normalize_address(raw: str | None) -> str | None:
    """First address in a header-ish value (`"Me <trip-x@...>"`, comma lists), lowercased."""
    if not raw:
        return None
    for _, addr in getaddresses([raw]):
        addr = addr.strip().lower()
        if "@" in addr:
            return addr
    return None


def get_user(session: Session, *, user_id: uuid.UUID) -> User | None:
    return session.scalar(select(User).where(User.id == user_id))


def get_user_by_email(session: Session, *, email: str) -> User | None:
    return session.scalar(select(User).where(User.email == email))


def get_user_by_forwarding_email(session: Session, *, recipient: str | None) -> User | None:
    address = normalize_address(recipient)
    if not address:
        return None
    return session.scalar(
        select(User).where(User.forwarding_email == address, User.is_active.is_(True))
    )


def create_user(
    session: Session,
    *,
    email: str | None = None,
    full_name: str | None = None,
    credits: int | None = None,
) -> User:
    if email and get_user_by_email(session, email=email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")

    forwarding = generate_forwarding_email()
    while session.scalar(select(User.id).where(User.forwarding_email == forwarding)):
        forwarding = generate_forwarding_email()

    user = User(
        email=email,
        full_name=full_name,
        forwarding_email=forwarding,
        credits=settings.default_free_credits if credits is None else credits,
        is_active=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def set_push_token(session: Session, *, user: User, token: str | None) -> User:
    user.push_token = (token or "").strip() or None
    session.add(user)
    session.commit()
    session.refresh(user)
    return user
