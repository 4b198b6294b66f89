from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum


class IngestStatus(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    NO_BOOKINGS = "no_bookings"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    # Some documents were created before the balance ran out.
    CREDITS_EXHAUSTED = "credits_exhausted"


@dataclass(frozen=True)
class FileItem:
    """A file already in object storage, referenced by URL."""

    url: str
    mime_type: str
    filename: str | None = None
    storage_key: str | None = None
    # Byte-level fingerprint when the caller had the bytes; the URL is hashed otherwise.
    fingerprint: str | None = None
    context_hints: str | None = None


@dataclass(frozen=True)
class EmailBodyItem:
    html: str | None
    plain: str | None
    subject: str | None = None
    sender: str | None = None


@dataclass
class IngestResult:
    status: IngestStatus
    fingerprint: str | None = None
    created_document_ids: list[uuid.UUID] = field(default_factory=list)
    auto_assigned_trip_id: uuid.UUID | None = None
    auto_assigned_trip_name: str | None = None
    needs_manual_assignment: bool = False
    duplicate_of: uuid.UUID | None = None

    @property
    def credits_exhausted(self) -> bool:
        return self.status in {IngestStatus.INSUFFICIENT_CREDITS, IngestStatus.CREDITS_EXHAUSTED}
