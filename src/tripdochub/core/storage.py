from __future__ import annotations

import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tripdochub.core.config import settings
from tripdochub.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

_RETRYABLE_S3_CODES = {
    "RequestCanceled",
    "RequestTimeout",
    "Throttling",
    "ThrottlingException",
    "SlowDown",
    "InternalError",
    "ServiceUnavailable",
}


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    byte_size: int


def make_object_key(*, namespace: str, user_id: str, filename: str) -> str:
    """`<namespace>/<user>/<random>-<filename>`; the random part keeps keys collision-free."""
    safe = sanitize_filename(filename) or "upload.bin"
    return f"{namespace}/{user_id}/{secrets.token_urlsafe(9)}-{safe}"


def sanitize_filename(name: str) -> str:
    name = name.replace("\\", "/").split("/")[-1].strip()
    return " ".join(name.split())


class ObjectStorage:
    backend = "abstract"

    def put(
        self, *, key: str, body: bytes, content_type: str | None = None
    ) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def url_for(self, *, key: str) -> str:  # pragma: no cover
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage; objects are served back by the `/files/{key}` route."""

    backend = "local"

    def __init__(self, root: Path, *, base_url: str):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise StorageError(f"Invalid key: {key}")
        return path

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        start = time.monotonic()
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except Exception:
            log_exception(
                logger, "storage.put.failure", backend="local", storage_key=key, byte_size=len(body)
            )
            raise
        log_event(
            logger,
            "storage.put.success",
            backend="local",
            storage_key=key,
            content_type=content_type,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, url=self.url_for(key=key), byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            log_event(logger, "storage.get.failure", backend="local", storage_key=key)
            raise StorageError(f"Object not found: {key}")
        return path.read_bytes()

    def delete(self, *, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def url_for(self, *, key: str) -> str:
        return f"{self._base_url}/files/{quote(key)}"


class S3ObjectStorage(ObjectStorage):
    backend = "s3"

    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        config = Config(
            s3={"addressing_style": "virtual"},
            retries={"max_attempts": 3, "mode": "adaptive"},
            connect_timeout=30,
            read_timeout=60,
        )
        self._client = session.client(
            "s3", endpoint_url=settings.s3_endpoint_url or None, config=config
        )
        self._bucket = settings.s3_bucket

    @staticmethod
    def _retry_delay_s(attempt: int) -> float:
        # attempt=1 => 0.25s, attempt=2 => 0.5s, ... capped at 3s
        return min(3.0, 0.25 * (2 ** (attempt - 1)))

    @staticmethod
    def _should_retry(error: Exception) -> bool:
        if isinstance(error, ClientError):
            return (error.response.get("Error") or {}).get("Code") in _RETRYABLE_S3_CODES
        return isinstance(error, BotoCoreError)

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        start = time.monotonic()
        extra = {"ContentType": content_type} if content_type else {}
        max_attempts = 5
        for attempt in range(1, max_attempts + 1):
            try:
                self._client.put_object(Bucket=self._bucket, Key=key, Body=body, **extra)
                break
            except Exception as e:  # noqa: BLE001
                if attempt < max_attempts and self._should_retry(e):
                    delay_s = self._retry_delay_s(attempt)
                    log_event(
                        logger,
                        "storage.put.retry",
                        backend="s3",
                        storage_key=key,
                        attempt=attempt,
                        delay_s=delay_s,
                        error_type=type(e).__name__,
                    )
                    time.sleep(delay_s)
                    continue
                log_exception(
                    logger,
                    "storage.put.failure",
                    backend="s3",
                    storage_key=key,
                    byte_size=len(body),
                    attempt=attempt,
                )
                raise
        log_event(
            logger,
            "storage.put.success",
            backend="s3",
            storage_key=key,
            content_type=content_type,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, url=self.url_for(key=key), byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "storage.get.failure", backend="s3", storage_key=key)
            raise StorageError(f"Object not found: {key}") from e
        return resp["Body"].read()

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "storage.delete.failure", backend="s3", storage_key=key)
            raise StorageError(f"Delete failed: {key}") from e

    def url_for(self, *, key: str) -> str:
        if settings.s3_public_base_url:
            return f"{settings.s3_public_base_url.rstrip('/')}/{quote(key)}"
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=settings.storage_url_ttl_seconds,
        )


def build_storage() -> ObjectStorage:
    if settings.storage_backend == "s3":
        return S3ObjectStorage()
    root = settings.local_storage_path
    if not root.is_absolute():
        root = Path(os.getcwd()) / root
    return LocalObjectStorage(root, base_url=settings.base_url)
