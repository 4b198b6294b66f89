from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import tripdochub.models  # noqa: F401
# isort: on

import time
from typing import Any

from tripdochub.core.logging import get_logger, log_event, log_exception, monotonic_ms, task_context
from tripdochub.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="process_inbound_email", bind=True)
def process_inbound_email_task(self, job: dict[str, Any]) -> dict[str, Any]:
    from tripdochub.modules.inbound_email.schemas import InboundEmailJob
    from tripdochub.modules.inbound_email.service import process_inbound_email

    task_id = getattr(self.request, "id", None)
    parsed = InboundEmailJob.model_validate(job)
    start = time.monotonic()
    with task_context(task_id, user_id=str(parsed.user_id)):
        log_event(
            logger,
            "celery.task.start",
            task_name="process_inbound_email",
            attachment_count=len(parsed.attachments),
        )
        try:
            outcome = process_inbound_email(parsed)
        except Exception:
            log_exception(
                logger,
                "celery.task.error",
                task_name="process_inbound_email",
                subject=parsed.subject,
                duration_ms=monotonic_ms(start),
            )
            raise
        log_event(
            logger,
            "celery.task.finish",
            task_name="process_inbound_email",
            created=outcome.created,
            duration_ms=monotonic_ms(start),
        )
    return outcome.model_dump()
