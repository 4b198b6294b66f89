from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from tripdochub.api.deps import get_current_user, get_extraction_client, get_storage
from tripdochub.core.config import settings
from tripdochub.core.db import db_session
from tripdochub.core.fingerprint import fingerprint_bytes
from tripdochub.core.logging import get_logger, log_event
from tripdochub.core.storage import ObjectStorage, make_object_key
from tripdochub.modules.credits.service import can_consume
from tripdochub.modules.documents.models import Document
from tripdochub.modules.documents.schemas import (
    ClientSource,
    DocumentAssign,
    DocumentCounts,
    DocumentOut,
    IngestOut,
    UrlIngestIn,
)
from tripdochub.modules.documents.service import (
    assign_document,
    count_documents,
    delete_document,
    get_document_for_user,
    list_inbox,
    list_trip_documents,
    mark_read,
    to_out,
)
from tripdochub.modules.extraction.client import ExtractionClient
from tripdochub.modules.identity.models import User
from tripdochub.modules.ingestion.schemas import FileItem, IngestResult, IngestStatus
from tripdochub.modules.ingestion.service import IngestionService

router = APIRouter(tags=["documents"])
logger = get_logger(__name__)


def _ingest_out(session: Session, result: IngestResult) -> IngestOut:
    if result.status == IngestStatus.INSUFFICIENT_CREDITS:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="No credits remaining"
        )
    docs: list[Document] = []
    if result.created_document_ids:
        docs = list(
            session.scalars(select(Document).where(Document.id.in_(result.created_document_ids)))
        )
        order = {doc_id: i for i, doc_id in enumerate(result.created_document_ids)}
        docs.sort(key=lambda d: order[d.id])
    return IngestOut(
        status=result.status.value,
        created_document_ids=result.created_document_ids,
        auto_assigned_trip_id=result.auto_assigned_trip_id,
        auto_assigned_trip_name=result.auto_assigned_trip_name,
        needs_manual_assignment=result.needs_manual_assignment,
        credits_exhausted=result.credits_exhausted,
        documents=[to_out(d) for d in docs],
    )


@router.post("/documents/upload", response_model=IngestOut)
def upload_document(
    upload: UploadFile = File(...),
    trip_id: uuid.UUID | None = Form(default=None),
    source: ClientSource = Form(default=ClientSource.UPLOAD),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    extractor: ExtractionClient = Depends(get_extraction_client),
) -> IngestOut:
    body = upload.file.read()
    filename = upload.filename or "upload.bin"
    content_type = (upload.content_type or "application/octet-stream").split(";")[0]
    log_event(
        logger,
        "upload.received",
        filename=filename,
        content_type=content_type,
        byte_size=len(body),
    )
    if not body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")
    if len(body) > settings.inbound_max_attachment_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large"
        )
    if not can_consume(session, user_id=user.id):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED, detail="No credits remaining"
        )

    key = make_object_key(namespace="documents", user_id=str(user.id), filename=filename)
    stored = storage.put(key=key, body=body, content_type=content_type)
    result = IngestionService(session, extractor=extractor).ingest(
        user_id=user.id,
        source=source.to_document_source(),
        item=FileItem(
            url=stored.url,
            mime_type=content_type,
            filename=filename,
            storage_key=stored.key,
            fingerprint=fingerprint_bytes(body),
        ),
        trip_id=trip_id,
    )
    return _ingest_out(session, result)


@router.post("/documents/ingest-url", response_model=IngestOut)
def ingest_url(
    payload: UrlIngestIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
    extractor: ExtractionClient = Depends(get_extraction_client),
) -> IngestOut:
    result = IngestionService(session, extractor=extractor).ingest(
        user_id=user.id,
        source=payload.source.to_document_source(),
        item=FileItem(
            url=payload.file_url, mime_type=payload.mime_type, filename=payload.file_name
        ),
        trip_id=payload.trip_id,
    )
    return _ingest_out(session, result)


@router.get("/documents/inbox", response_model=list[DocumentOut])
def inbox(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[DocumentOut]:
    return [to_out(d) for d in list_inbox(session, user_id=user.id)]


@router.get("/documents/counts", response_model=DocumentCounts)
def counts(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> DocumentCounts:
    return count_documents(session, user_id=user.id)


@router.get("/trips/{trip_id}/documents", response_model=list[DocumentOut])
def trip_documents(
    trip_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[DocumentOut]:
    docs = list_trip_documents(session, user_id=user.id, trip_id=trip_id)
    return [to_out(d) for d in docs]


@router.get("/documents/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> DocumentOut:
    doc = get_document_for_user(session, document_id=document_id, user_id=user.id)
    return to_out(mark_read(session, doc=doc))


@router.put("/documents/{document_id}/trip", response_model=DocumentOut)
def assign(
    document_id: uuid.UUID,
    payload: DocumentAssign,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> DocumentOut:
    doc = get_document_for_user(session, document_id=document_id, user_id=user.id)
    updated = assign_document(session, doc=doc, user_id=user.id, trip_id=payload.trip_id)
    return to_out(updated)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
) -> None:
    doc = get_document_for_user(session, document_id=document_id, user_id=user.id)
    delete_document(session, doc=doc, storage=storage)
