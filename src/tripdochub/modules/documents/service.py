from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tripdochub.core.logging import get_logger, log_event
from tripdochub.core.storage import ObjectStorage
from tripdochub.modules.documents.models import Document
from tripdochub.modules.documents.schemas import DocumentActions, DocumentCounts, DocumentOut
from tripdochub.modules.documents.storage import release_stored_objects
from tripdochub.modules.extraction.repair import known_details, navigation_address
from tripdochub.modules.trips.service import get_trip_for_user

logger = get_logger(__name__)


def document_actions(doc: Document) -> DocumentActions:
    details = known_details(doc.category, doc.details or {})
    return DocumentActions(
        navigate=navigation_address(doc.category, details),
        call=details.get("phoneNumber"),
        email=details.get("emailAddress"),
    )


def to_out(doc: Document) -> DocumentOut:
    out = DocumentOut.model_validate(doc, from_attributes=True)
    out.actions = document_actions(doc)
    return out


def find_by_content_hash(
    session: Session, *, user_id: uuid.UUID, content_hash: str
) -> Document | None:
    return session.scalar(
        select(Document)
        .where(Document.user_id == user_id, Document.content_hash == content_hash)
        .order_by(Document.created_at)
        .limit(1)
    )


def list_inbox(session: Session, *, user_id: uuid.UUID) -> list[Document]:
    return list(
        session.scalars(
            select(Document)
            .where(Document.user_id == user_id, Document.trip_id.is_(None))
            .order_by(Document.created_at.desc())
        )
    )


def list_trip_documents(
    session: Session, *, user_id: uuid.UUID, trip_id: uuid.UUID
) -> list[Document]:
    trip = get_trip_for_user(session, trip_id=trip_id, user_id=user_id)
    return list(
        session.scalars(
            select(Document)
            .where(Document.trip_id == trip.id)
            .order_by(Document.document_date.is_(None), Document.document_date, Document.id)
        )
    )


def count_documents(session: Session, *, user_id: uuid.UUID) -> DocumentCounts:
    rows = session.execute(
        select(Document.trip_id, func.count(Document.id))
        .where(Document.user_id == user_id)
        .group_by(Document.trip_id)
    )
    inbox = 0
    by_trip: dict[uuid.UUID, int] = {}
    for trip_id, n in rows:
        if trip_id is None:
            inbox = int(n)
        else:
            by_trip[trip_id] = int(n)
    unread = session.scalar(
        select(func.count(Document.id)).where(
            Document.user_id == user_id, Document.is_read.is_(False)
        )
    )
    return DocumentCounts(inbox=inbox, unread=int(unread or 0), by_trip=by_trip)


def get_document_for_user(
    session: Session, *, document_id: uuid.UUID, user_id: uuid.UUID
) -> Document:
    doc = session.scalar(select(Document).where(Document.id == document_id))
    if not doc or doc.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return doc


def mark_read(session: Session, *, doc: Document) -> Document:
    if doc.is_read:
        return doc
    doc.is_read = True
    session.add(doc)
    session.commit()
    session.refresh(doc)
    return doc


def assign_document(
    session: Session, *, doc: Document, user_id: uuid.UUID, trip_id: uuid.UUID | None
) -> Document:
    if trip_id is not None:
        get_trip_for_user(session, trip_id=trip_id, user_id=user_id)
    doc.trip_id = trip_id
    session.add(doc)
    session.commit()
    session.refresh(doc)
    log_event(
        logger,
        "document.assigned",
        document_id=str(doc.id),
        trip_id=str(trip_id) if trip_id else None,
    )
    return doc


def delete_document(
    session: Session, *, doc: Document, storage: ObjectStorage | None = None
) -> None:
    storage_key = doc.storage_key
    document_id = str(doc.id)
    session.delete(doc)
    session.commit()
    log_event(logger, "document.deleted", document_id=document_id)
    release_stored_objects(session, storage=storage, keys=[storage_key])
