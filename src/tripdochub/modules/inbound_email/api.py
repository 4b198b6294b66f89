from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from tripdochub.api.deps import get_notifier, get_storage
from tripdochub.core.db import db_session, session_scope
from tripdochub.core.logging import get_logger, log_event, log_exception
from tripdochub.core.models import utcnow
from tripdochub.core.storage import ObjectStorage
from tripdochub.modules.credits.service import can_consume
from tripdochub.modules.identity.service import get_user, get_user_by_forwarding_email
from tripdochub.modules.inbound_email.schemas import InboundAccepted, InboundEmailJob
from tripdochub.modules.inbound_email.service import (
    IncomingAttachment,
    select_attachments,
    should_parse_body,
    store_attachments,
    verify_signature,
)
from tripdochub.modules.notifications import service as notifications
from tripdochub.modules.notifications.service import Notification, Notifier
from tripdochub.worker.tasks import process_inbound_email_task

router = APIRouter(tags=["inbound-email"])
logger = get_logger(__name__)


def _field(form, *names: str) -> str | None:
    for name in names:
        value = form.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def _read_attachments(form) -> list[IncomingAttachment]:
    out: list[IncomingAttachment] = []
    for _, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue
        out.append(
            IncomingAttachment(
                filename=value.filename or "attachment.bin",
                content_type=(value.content_type or "application/octet-stream").split(";")[0],
                body=await value.read(),
            )
        )
    return out


def _notify(notifier: Notifier, user_id: uuid.UUID, notification: Notification) -> None:
    with session_scope() as session:
        user = get_user(session, user_id=user_id)
        if user:
            notifier.send(user, notification)


def _dispatch(job: InboundEmailJob, notifier: Notifier) -> None:
    _notify(
        notifier,
        job.user_id,
        notifications.email_received(
            subject=job.subject, attachment_count=len(job.attachments)
        ),
    )
    try:
        async_result = process_inbound_email_task.delay(job.model_dump(mode="json"))
    except Exception:
        log_exception(
            logger,
            "celery.task.enqueue_error",
            task_name="process_inbound_email",
            user_id=str(job.user_id),
            storage_keys=[a.storage_key for a in job.attachments],
            subject=job.subject,
        )
        _notify(notifier, job.user_id, notifications.processing_failed(subject=job.subject))
        return
    log_event(
        logger,
        "celery.task.enqueued",
        task_name="process_inbound_email",
        celery_task_id=async_result.id,
        user_id=str(job.user_id),
    )


@router.post("/webhooks/mailgun", response_model=InboundAccepted)
async def mailgun_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(db_session),
    storage: ObjectStorage = Depends(get_storage),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        form = await request.form()
        verify_signature(
            timestamp=_field(form, "timestamp"),
            token=_field(form, "token"),
            signature=_field(form, "signature"),
        )

        recipient = _field(form, "recipient", "To", "to")
        if not recipient:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No recipient")
        user = get_user_by_forwarding_email(session, recipient=recipient)
        if not user:
            log_event(logger, "inbound_email.unknown_recipient", recipient=recipient)
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        subject = _field(form, "subject", "Subject")
        sender = _field(form, "sender", "from", "From")
        log_event(
            logger, "inbound_email.received", user_id=str(user.id), sender=sender, subject=subject
        )

        if not can_consume(session, user_id=user.id):
            log_event(logger, "inbound_email.no_credits", user_id=str(user.id))
            background_tasks.add_task(_notify, notifier, user.id, notifications.no_credits())
            return JSONResponse(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                content={"detail": "No credits remaining"},
                background=background_tasks,
            )

        body_html = _field(form, "body-html")
        body_plain = _field(form, "body-plain")
        attachments = select_attachments(await _read_attachments(form))
        will_parse_body = not attachments and should_parse_body(body_html, body_plain)
        if not attachments and not will_parse_body:
            log_event(logger, "inbound_email.empty", user_id=str(user.id))
            return InboundAccepted(
                message="No content to process", attachment_count=0, will_parse_body=False
            )

        stored = await run_in_threadpool(
            store_attachments, storage, user_id=str(user.id), attachments=attachments
        )
        job = InboundEmailJob(
            user_id=user.id,
            recipient=recipient,
            sender=sender,
            subject=subject,
            body_html=body_html,
            body_plain=body_plain,
            attachments=stored,
            received_at=utcnow(),
        )
    except HTTPException:
        raise
    except Exception as e:
        log_exception(logger, "inbound_email.webhook.error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error"
        ) from e

    background_tasks.add_task(_dispatch, job, notifier)
    return InboundAccepted(
        message="Email received, processing in background",
        attachment_count=len(stored),
        will_parse_body=will_parse_body,
    )


@router.get("/webhooks/mailgun/health")
def mailgun_health() -> dict[str, str]:
    return {"status": "ok", "service": "mailgun-webhook"}
