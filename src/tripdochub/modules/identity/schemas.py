from __future__ import annotations

import uuid

from pydantic import BaseModel, EmailStr, Field


class UserOut(BaseModel):
    id: uuid.UUID
    email: EmailStr | None
    full_name: str | None
    forwarding_email: str
    is_active: bool


class ForwardingEmailOut(BaseModel):
    email: str


class PushTokenIn(BaseModel):
    token: str | None = Field(default=None, max_length=255)
