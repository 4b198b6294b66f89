from __future__ import annotations

import uuid
import enum
from datetime import datetime

from pydantic import BaseModel

from tripdochub.modules.documents.models import DocumentCategory, DocumentSource


class ClientSource(str, enum.Enum):
    """Sources a client may claim; `email` is reserved for the inbound webhook."""

    UPLOAD = DocumentSource.UPLOAD.value
    CAMERA = DocumentSource.CAMERA.value

    def to_document_source(self) -> DocumentSource:
        return DocumentSource(self.value)


class DocumentActions(BaseModel):
    navigate: str | None = None
    call: str | None = None
    email: str | None = None


class DocumentOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    trip_id: uuid.UUID | None
    category: DocumentCategory
    document_type: str
    title: str
    subtitle: str | None
    details: dict[str, str]
    document_date: datetime | None
    original_file_url: str | None
    original_file_name: str | None
    original_file_mime_type: str | None
    source: DocumentSource
    email_subject: str | None
    is_read: bool
    actions: DocumentActions = DocumentActions()
    created_at: datetime
    updated_at: datetime


class DocumentAssign(BaseModel):
    # None moves the document back to the inbox.
    trip_id: uuid.UUID | None = None


class DocumentCounts(BaseModel):
    inbox: int
    unread: int
    by_trip: dict[uuid.UUID, int]


class UrlIngestIn(BaseModel):
    file_url: str
    mime_type: str
    file_name: str | None = None
    trip_id: uuid.UUID | None = None
    source: ClientSource = ClientSource.UPLOAD


class IngestOut(BaseModel):
    status: str
    created_document_ids: list[uuid.UUID]
    auto_assigned_trip_id: uuid.UUID | None = None
    auto_assigned_trip_name: str | None = None
    needs_manual_assignment: bool = False
    credits_exhausted: bool = False
    documents: list[DocumentOut] = []
