from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class StoredAttachment(BaseModel):
    storage_key: str
    url: str
    filename: str
    mime_type: str
    byte_size: int
    # sha256 of the attachment bytes
    fingerprint: str


class InboundEmailJob(BaseModel):
    """Everything the background worker needs; attachments are already in object storage."""

    user_id: uuid.UUID
    recipient: str
    sender: str | None = None
    subject: str | None = None
    body_html: str | None = None
    body_plain: str | None = None
    attachments: list[StoredAttachment] = Field(default_factory=list)
    received_at: datetime


class InboundAccepted(BaseModel):
    message: str
    attachment_count: int = Field(serialization_alias="attachmentCount")
    will_parse_body: bool = Field(serialization_alias="willParseBody")


class InboundOutcome(BaseModel):
    created: int = 0
    duplicates: int = 0
    failed: int = 0
    out_of_credits: bool = False
    notified: str | None = None
