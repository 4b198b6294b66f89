from __future__ import annotations

from celery import Celery

from tripdochub.core.config import settings


def make_celery() -> Celery:
    app = Celery("tripdochub", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_track_started=True,
        # A job is only acknowledged once processed; a crashed worker gets it redelivered
        # and content fingerprints make the second run a no-op.
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_serializer="json",
        accept_content=["json"],
    )
    app.autodiscover_tasks(["tripdochub.worker.tasks"])
    return app


celery_app = make_celery()
