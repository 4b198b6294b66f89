from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tripdochub.core.db import db_session
from tripdochub.core.logging import set_user_context
from tripdochub.core.security import decode_access_token
from tripdochub.core.storage import ObjectStorage, build_storage
from tripdochub.modules.extraction.client import ExtractionClient, build_extraction_client
from tripdochub.modules.identity.models import User
from tripdochub.modules.identity.service import get_user
from tripdochub.modules.notifications.service import Notifier, build_notifier

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(db_session),
) -> User:
    token = credentials.credentials if credentials else None
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    subject = decode_access_token(token)
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        user_id = uuid.UUID(subject)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from e

    user = get_user(session, user_id=user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    set_user_context(str(user.id))
    return user


# Collaborators are constructed per request so tests can swap them through
# app.dependency_overrides.
def get_storage() -> ObjectStorage:
    return build_storage()


def get_extraction_client() -> ExtractionClient:
    return build_extraction_client()


def get_notifier() -> Notifier:
    return build_notifier()
