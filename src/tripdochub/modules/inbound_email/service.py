"""
Inbound email (Mailgun "store and notify" style webhook).

The provider gives up after a few seconds, so the request handler only verifies, routes,
gates on credits and stores the attachments. Extraction runs afterwards in
`process_inbound_email` (a Celery task in production); from that point on the user can only
be told about failures through push notifications.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from tripdochub.core.config import settings
from tripdochub.core.db import session_scope
from tripdochub.core.fingerprint import fingerprint_bytes
from tripdochub.core.logging import get_logger, log_event, log_exception, monotonic_ms
from tripdochub.core.security import constant_time_equals, hmac_sha256_hex
from tripdochub.core.storage import ObjectStorage, make_object_key
from tripdochub.modules.documents.models import DocumentSource
from tripdochub.modules.extraction.client import ExtractionClient, build_extraction_client
from tripdochub.modules.identity.models import User
from tripdochub.modules.identity.service import get_user
from tripdochub.modules.inbound_email.schemas import (
    InboundEmailJob,
    InboundOutcome,
    StoredAttachment,
)
from tripdochub.modules.ingestion.schemas import EmailBodyItem, FileItem, IngestResult, IngestStatus
from tripdochub.modules.ingestion.service import IngestionService
from tripdochub.modules.notifications import service as notifications
from tripdochub.modules.notifications.service import Notifier, build_notifier

logger = get_logger(__name__)

ATTACHMENT_NAMESPACE = "documents"


@dataclass(frozen=True)
class IncomingAttachment:
    filename: str
    content_type: str
    body: bytes


def verify_signature(*, timestamp: str | None, token: str | None, signature: str | None) -> None:
    """Raise 401 unless the delivery carries a fresh, valid Mailgun signature."""
    key = settings.mailgun_webhook_signing_key
    if not key:
        if settings.is_production:
            log_event(logger, "inbound_email.signature.key_missing", level=logging.ERROR)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Signature verification failed"
            )
        log_event(logger, "inbound_email.signature.unverified", level=logging.WARNING)
        return

    if not (timestamp and token and signature):
        log_event(logger, "inbound_email.signature.missing", level=logging.WARNING)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")

    expected = hmac_sha256_hex(key, timestamp + token)
    if not constant_time_equals(expected, signature.strip().lower()):
        log_event(logger, "inbound_email.signature.invalid", level=logging.WARNING)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        age = abs(time.time() - int(timestamp))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        ) from e
    if age > settings.mailgun_signature_max_age_seconds:
        log_event(logger, "inbound_email.signature.stale", level=logging.WARNING, age_s=int(age))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Stale signature")


def is_ingestible_mime_type(mime_type: str | None) -> bool:
    mime = (mime_type or "").lower()
    return mime.startswith("image/") or mime == "application/pdf"


def select_attachments(incoming: list[IncomingAttachment]) -> list[IncomingAttachment]:
    """Apply the count, size and type limits; skipped files are logged, not rejected."""
    if len(incoming) > settings.inbound_max_attachments:
        log_event(
            logger,
            "inbound_email.attachments.truncated",
            level=logging.WARNING,
            received=len(incoming),
            kept=settings.inbound_max_attachments,
        )
    out: list[IncomingAttachment] = []
    for att in incoming[: settings.inbound_max_attachments]:
        if len(att.body) > settings.inbound_max_attachment_bytes:
            reason = "too_large"
        elif not is_ingestible_mime_type(att.content_type):
            reason = "unsupported_type"
        elif not att.body:
            reason = "empty"
        else:
            out.append(att)
            continue
        log_event(
            logger,
            "inbound_email.attachment.skipped",
            filename=att.filename,
            content_type=att.content_type,
            byte_size=len(att.body),
            reason=reason,
        )
    return out


def should_parse_body(html_body: str | None, plain_body: str | None) -> bool:
    return any(
        len((body or "").strip()) > settings.email_body_min_chars
        for body in (html_body, plain_body)
    )


def store_attachments(
    storage: ObjectStorage, *, user_id: str, attachments: list[IncomingAttachment]
) -> list[StoredAttachment]:
    stored: list[StoredAttachment] = []
    for att in attachments:
        key = make_object_key(
            namespace=ATTACHMENT_NAMESPACE, user_id=user_id, filename=att.filename
        )
        obj = storage.put(key=key, body=att.body, content_type=att.content_type)
        stored.append(
            StoredAttachment(
                storage_key=obj.key,
                url=obj.url,
                filename=att.filename,
                mime_type=att.content_type,
                byte_size=obj.byte_size,
                fingerprint=fingerprint_bytes(att.body),
            )
        )
    return stored


def process_inbound_email(
    job: InboundEmailJob,
    *,
    extractor: ExtractionClient | None = None,
    notifier: Notifier | None = None,
) -> InboundOutcome:
    """
    Ingest a stored delivery: attachments one at a time in order, else the body.

    Never raises. Per-attachment failures are logged with the storage key so the file can
    be re-ingested by hand; the user hears about the overall outcome through `notifier`.
    """
    extractor = extractor or build_extraction_client()
    notifier = notifier or build_notifier()
    outcome = InboundOutcome()
    start = time.monotonic()

    with session_scope() as session:
        user = get_user(session, user_id=job.user_id)
        if not user:
            log_event(
                logger, "inbound_email.user_missing", level=logging.ERROR, user_id=str(job.user_id)
            )
            return outcome

        ingestion = IngestionService(session, extractor=extractor)
        try:
            if job.attachments:
                for att in job.attachments:
                    item = FileItem(
                        url=att.url,
                        mime_type=att.mime_type,
                        filename=att.filename,
                        storage_key=att.storage_key,
                        fingerprint=att.fingerprint,
                    )
                    result = _ingest_one(
                        session, ingestion, job, item, outcome, storage_key=att.storage_key
                    )
                    if result is not None and result.credits_exhausted:
                        break
            else:
                item = EmailBodyItem(
                    html=job.body_html, plain=job.body_plain, subject=job.subject, sender=job.sender
                )
                _ingest_one(session, ingestion, job, item, outcome, storage_key=None)

            _notify_outcome(notifier, user, job, outcome)
        except Exception:
            session.rollback()
            log_exception(
                logger,
                "inbound_email.process.error",
                user_id=str(job.user_id),
                subject=job.subject,
                storage_keys=[a.storage_key for a in job.attachments],
            )
            outcome.notified = "email_error"
            notifier.send(user, notifications.processing_failed(subject=job.subject))

    log_event(
        logger,
        "inbound_email.processed",
        user_id=str(job.user_id),
        created=outcome.created,
        duplicates=outcome.duplicates,
        failed=outcome.failed,
        out_of_credits=outcome.out_of_credits,
        notified=outcome.notified,
        duration_ms=monotonic_ms(start),
    )
    return outcome


def _ingest_one(
    session: Session,
    ingestion: IngestionService,
    job: InboundEmailJob,
    item: FileItem | EmailBodyItem,
    outcome: InboundOutcome,
    *,
    storage_key: str | None,
) -> IngestResult | None:
    try:
        result = ingestion.ingest(
            user_id=job.user_id,
            source=DocumentSource.EMAIL,
            item=item,
            email_subject=job.subject,
        )
    except Exception:
        session.rollback()
        outcome.failed += 1
        log_exception(
            logger,
            "inbound_email.item.error",
            user_id=str(job.user_id),
            storage_key=storage_key,
            subject=job.subject,
        )
        return None

    outcome.created += len(result.created_document_ids)
    if result.status == IngestStatus.DUPLICATE:
        outcome.duplicates += 1
    if result.credits_exhausted:
        outcome.out_of_credits = True
    return result


def _notify_outcome(
    notifier: Notifier, user: User, job: InboundEmailJob, outcome: InboundOutcome
) -> None:
    sent: list[str] = []
    if outcome.created:
        notifier.send(user, notifications.documents_added(count=outcome.created))
        sent.append("email_completed")
    if outcome.out_of_credits:
        notifier.send(user, notifications.no_credits())
        sent.append("email_no_credits")
    elif not outcome.created:
        if outcome.failed:
            notifier.send(user, notifications.processing_failed(subject=job.subject))
            sent.append("email_error")
        elif not outcome.duplicates:
            notifier.send(user, notifications.no_bookings_found(subject=job.subject))
            sent.append("email_no_bookings")
    outcome.notified = ",".join(sent) or None
