from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

import pytest

# Set env before any tripdochub imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.tripdochub_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("MAILGUN_WEBHOOK_SIGNING_KEY", "")


class FakeOracle:
    """Stands in for the chat completions endpoint; records every request."""

    def __init__(
        self, documents: list[dict[str, Any]] | None = None, *, error: Exception | None = None
    ) -> None:
        self.documents = documents or []
        self.error = error
        self.reply: str | None = None
        self.calls: list[list[dict[str, Any]]] = []

    def complete(self, content: list[dict[str, Any]]) -> str:
        self.calls.append(content)
        if self.error:
            raise self.error
        if self.reply is not None:
            return self.reply
        return json.dumps({"documents": self.documents})


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, Any]] = []

    def send(self, user, notification) -> bool:
        self.sent.append((str(user.id), notification))
        return True

    @property
    def kinds(self) -> list[str]:
        return [n.kind for _, n in self.sent]


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import tripdochub.models  # noqa: F401
    from tripdochub.core.db import engine
    from tripdochub.core.models import Base

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    # Reset DB schema
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture
def make_user():
    """Create a user and return it with a bearer header for the API."""
    from tripdochub.core.db import SessionLocal
    from tripdochub.core.security import create_access_token
    from tripdochub.modules.identity.service import create_user

    def _make(email: str | None = "traveler@example.com", *, credits: int | None = None):
        with SessionLocal() as session:
            user = create_user(session, email=email, credits=credits)
        headers = {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}
        return user, headers

    return _make


@pytest.fixture
def client(fake_oracle, notifier, monkeypatch):
    from fastapi.testclient import TestClient

    from tripdochub.api.deps import get_extraction_client, get_notifier
    from tripdochub.main import app
    from tripdochub.modules.extraction.client import ExtractionClient
    from tripdochub.modules.inbound_email import service as inbound_service

    # The email worker builds its own collaborators.
    monkeypatch.setattr(
        inbound_service, "build_extraction_client", lambda: ExtractionClient(fake_oracle)
    )
    monkeypatch.setattr(inbound_service, "build_notifier", lambda: notifier)
    app.dependency_overrides[get_extraction_client] = lambda: ExtractionClient(fake_oracle)
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
