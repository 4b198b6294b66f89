from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from tripdochub.core.logging import get_logger, log_event
from tripdochub.core.storage import ObjectStorage, StorageError
from tripdochub.modules.documents.models import Document

logger = get_logger(__name__)


def release_stored_objects(
    session: Session, *, storage: ObjectStorage | None, keys: Iterable[str | None]
) -> list[str]:
    """
    Delete stored objects that no remaining document references.

    Must run after the owning rows are committed. Cleanup failures are logged, never raised;
    returns the keys that were removed.
    """
    if storage is None:
        return []
    released: list[str] = []
    for key in dict.fromkeys(k for k in keys if k):
        # Other documents extracted from the same file keep the object alive.
        if session.scalar(select(Document.id).where(Document.storage_key == key).limit(1)):
            continue
        try:
            storage.delete(key=key)
        except StorageError as e:
            log_event(
                logger,
                "document.storage_cleanup.failure",
                level=logging.WARNING,
                storage_key=key,
                error=str(e),
            )
            continue
        released.append(key)
    return released
