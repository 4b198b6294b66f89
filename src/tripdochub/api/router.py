from __future__ import annotations

import mimetypes

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from tripdochub.api.deps import get_storage
from tripdochub.core.storage import LocalObjectStorage, ObjectStorage, StorageError
from tripdochub.modules.credits.api import router as credits_router
from tripdochub.modules.documents.api import router as documents_router
from tripdochub.modules.identity.api import router as identity_router
from tripdochub.modules.inbound_email.api import router as inbound_email_router
from tripdochub.modules.trips.api import router as trips_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(trips_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(credits_router, prefix="/api")
router.include_router(inbound_email_router)


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/files/{key:path}")
def serve_local_file(key: str, storage: ObjectStorage = Depends(get_storage)) -> Response:
    # S3 URLs point at the bucket directly.
    if not isinstance(storage, LocalObjectStorage):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    try:
        body = storage.get(key=key)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found") from e
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(content=body, media_type=media_type)
