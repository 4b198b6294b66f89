from __future__ import annotations

# isort: off
import tripdochub.models  # noqa: F401
# isort: on

import logging

from tripdochub.core.config import settings
from tripdochub.core.db import engine
from tripdochub.core.logging import get_logger, log_event
from tripdochub.core.models import Base

logger = get_logger(__name__)


def bootstrap() -> None:
    """Create tables for local SQLite development; everything else runs Alembic migrations."""
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)
        log_event(logger, "bootstrap.schema.created", database_url=settings.database_url)

    if settings.is_production and not settings.mailgun_webhook_signing_key:
        log_event(logger, "bootstrap.mailgun_signing_key.missing", level=logging.WARNING)
