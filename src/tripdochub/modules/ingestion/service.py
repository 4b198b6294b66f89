"""
Ingestion orchestrator shared by the upload endpoints and the inbound email worker.

One call handles one submitted item (a stored file, or an email body):

    credit gate -> fingerprint -> duplicate check -> extraction -> per document:
        trip resolution -> persist -> deduct one credit

Every document is committed together with the credit that pays for it. When the balance
runs out part way through a multi-booking file, the documents already created stay and the
result reports `CREDITS_EXHAUSTED`. Extraction never fails (see `ExtractionClient`); storage
and ledger errors propagate to the caller.
"""

from __future__ import annotations

import time
import uuid

from sqlalchemy.orm import Session

from tripdochub.core.fingerprint import fingerprint_text
from tripdochub.core.logging import get_logger, log_event, monotonic_ms
from tripdochub.modules.credits import service as credits
from tripdochub.modules.documents.models import Document, DocumentSource
from tripdochub.modules.documents.service import find_by_content_hash
from tripdochub.modules.extraction.client import ExtractionClient, email_body_fingerprint
from tripdochub.modules.extraction.schemas import ExtractionResult, ProposedDocument
from tripdochub.modules.ingestion.schemas import (
    EmailBodyItem,
    FileItem,
    IngestResult,
    IngestStatus,
)
from tripdochub.modules.trips.models import Trip
from tripdochub.modules.trips.service import find_matching_trip, get_trip_for_user

logger = get_logger(__name__)


class IngestionService:
    def __init__(self, session: Session, *, extractor: ExtractionClient) -> None:
        self.session = session
        self.extractor = extractor

    def ingest(
        self,
        *,
        user_id: uuid.UUID,
        source: DocumentSource,
        item: FileItem | EmailBodyItem,
        trip_id: uuid.UUID | None = None,
        email_subject: str | None = None,
    ) -> IngestResult:
        start = time.monotonic()
        kind = "file" if isinstance(item, FileItem) else "email_body"
        log_event(logger, "ingestion.start", user_id=str(user_id), source=source.value, kind=kind)

        if not credits.can_consume(self.session, user_id=user_id):
            log_event(logger, "ingestion.insufficient_credits", user_id=str(user_id))
            return IngestResult(status=IngestStatus.INSUFFICIENT_CREDITS)

        fingerprint = _fingerprint(item)
        existing = find_by_content_hash(self.session, user_id=user_id, content_hash=fingerprint)
        if existing:
            log_event(
                logger,
                "ingestion.duplicate",
                user_id=str(user_id),
                fingerprint=fingerprint,
                document_id=str(existing.id),
            )
            return IngestResult(
                status=IngestStatus.DUPLICATE, fingerprint=fingerprint, duplicate_of=existing.id
            )

        explicit_trip: Trip | None = None
        if trip_id is not None:
            explicit_trip = get_trip_for_user(self.session, trip_id=trip_id, user_id=user_id)

        extraction = self._extract(item, fingerprint)
        result = IngestResult(status=IngestStatus.NO_BOOKINGS, fingerprint=fingerprint)

        for proposed in extraction.documents:
            trip = explicit_trip or find_matching_trip(
                self.session, user_id=user_id, on=proposed.document_date
            )
            doc = self._build_document(
                user_id=user_id,
                source=source,
                item=item,
                proposed=proposed,
                trip=trip,
                fingerprint=fingerprint,
                email_subject=email_subject,
            )
            self.session.add(doc)
            self.session.flush()

            if not credits.deduct(self.session, user_id=user_id, commit=False):
                self.session.rollback()
                result.status = (
                    IngestStatus.CREDITS_EXHAUSTED
                    if result.created_document_ids
                    else IngestStatus.INSUFFICIENT_CREDITS
                )
                log_event(
                    logger,
                    "ingestion.credits_exhausted",
                    user_id=str(user_id),
                    created=len(result.created_document_ids),
                    remaining=len(extraction.documents) - len(result.created_document_ids),
                )
                break

            self.session.commit()
            result.created_document_ids.append(doc.id)
            result.status = IngestStatus.CREATED
            if trip is None:
                result.needs_manual_assignment = True
            elif explicit_trip is None and result.auto_assigned_trip_id is None:
                result.auto_assigned_trip_id = trip.id
                result.auto_assigned_trip_name = trip.name
            log_event(
                logger,
                "ingestion.document.created",
                user_id=str(user_id),
                document_id=str(doc.id),
                category=doc.category.value,
                trip_id=str(trip.id) if trip else None,
                fallback=extraction.fallback,
            )

        log_event(
            logger,
            "ingestion.finish",
            user_id=str(user_id),
            status=result.status.value,
            created=len(result.created_document_ids),
            needs_manual_assignment=result.needs_manual_assignment,
            duration_ms=monotonic_ms(start),
        )
        return result

    def _extract(self, item: FileItem | EmailBodyItem, fingerprint: str) -> ExtractionResult:
        if isinstance(item, FileItem):
            return self.extractor.extract(
                item.url, item.mime_type, item.context_hints, fingerprint=fingerprint
            )
        return self.extractor.extract_from_email_body(
            item.html, item.plain, item.subject, item.sender
        )

    @staticmethod
    def _build_document(
        *,
        user_id: uuid.UUID,
        source: DocumentSource,
        item: FileItem | EmailBodyItem,
        proposed: ProposedDocument,
        trip: Trip | None,
        fingerprint: str,
        email_subject: str | None,
    ) -> Document:
        doc = Document(
            user_id=user_id,
            trip_id=trip.id if trip else None,
            category=proposed.category,
            document_type=proposed.document_type[:100],
            title=proposed.title[:255],
            subtitle=proposed.subtitle[:255] if proposed.subtitle else None,
            details=dict(proposed.details),
            document_date=proposed.document_date,
            source=source,
            email_subject=email_subject[:500] if email_subject else None,
            content_hash=fingerprint,
            is_read=False,
        )
        if isinstance(item, FileItem):
            doc.original_file_url = item.url
            doc.original_file_name = item.filename
            doc.original_file_mime_type = item.mime_type
            doc.storage_key = item.storage_key
        return doc


def _fingerprint(item: FileItem | EmailBodyItem) -> str:
    if isinstance(item, FileItem):
        return item.fingerprint or fingerprint_text(item.url)
    return email_body_fingerprint(item.html, item.plain)
