from __future__ import annotations

import uuid

import pytest

from tripdochub.core.config import settings
from tripdochub.core.db import SessionLocal
from tripdochub.core.fingerprint import fingerprint_bytes
from tripdochub.core.models import utcnow
from tripdochub.modules.extraction.client import ExtractionClient
from tripdochub.modules.identity.service import (
    create_user,
    get_user_by_forwarding_email,
    normalize_address,
)
from tripdochub.modules.inbound_email.schemas import InboundEmailJob, StoredAttachment
from tripdochub.modules.inbound_email.service import (
    IncomingAttachment,
    process_inbound_email,
    select_attachments,
    should_parse_body,
)
from tripdochub.modules.ingestion.service import IngestionService
from tripdochub.worker.tasks import process_inbound_email_task

FLIGHT = {"category": "flight", "title": "TLV to BUD"}


def _attachment(name: str, body: bytes) -> StoredAttachment:
    return StoredAttachment(
        storage_key=f"documents/u/{name}",
        url=f"https://files.example/{name}",
        filename=name,
        mime_type="application/pdf",
        byte_size=len(body),
        fingerprint=fingerprint_bytes(body),
    )


def _job(user_id, **kwargs) -> InboundEmailJob:
    values = {
        "user_id": user_id,
        "recipient": "trip-abc@in.mytripdochub.com",
        "subject": "Trip docs",
        "received_at": utcnow(),
    }
    values.update(kwargs)
    return InboundEmailJob(**values)


def _user(credits: int | None = None):
    with SessionLocal() as session:
        return create_user(session, email="traveler@example.com", credits=credits)


def test_attachments_are_processed_in_order(fake_oracle, notifier):
    fake_oracle.documents = [FLIGHT]
    user = _user()
    job = _job(user.id, attachments=[_attachment("a.pdf", b"a"), _attachment("b.pdf", b"b")])

    outcome = process_inbound_email(
        job, extractor=ExtractionClient(fake_oracle), notifier=notifier
    )

    assert outcome.created == 2
    assert [call[1]["file_url"]["url"] for call in fake_oracle.calls] == [
        "https://files.example/a.pdf",
        "https://files.example/b.pdf",
    ]
    assert notifier.kinds == ["email_completed"]
    assert notifier.sent[0][1].data["documentCount"] == 2


def test_processing_stops_when_credits_run_out(fake_oracle, notifier):
    fake_oracle.documents = [FLIGHT]
    user = _user(credits=1)
    job = _job(
        user.id,
        attachments=[_attachment(n, n.encode()) for n in ("a.pdf", "b.pdf", "c.pdf")],
    )

    outcome = process_inbound_email(
        job, extractor=ExtractionClient(fake_oracle), notifier=notifier
    )

    assert outcome.created == 1
    assert outcome.out_of_credits is True
    # later attachments are refused before extraction
    assert len(fake_oracle.calls) == 1
    assert notifier.kinds == ["email_completed", "email_no_credits"]


def test_failing_attachment_does_not_stop_the_rest(fake_oracle, notifier, monkeypatch):
    fake_oracle.documents = [FLIGHT]
    user = _user()
    real_ingest = IngestionService.ingest

    def flaky_ingest(self, **kwargs):
        if kwargs["item"].filename == "broken.pdf":
            raise RuntimeError("storage unavailable")
        return real_ingest(self, **kwargs)

    monkeypatch.setattr(IngestionService, "ingest", flaky_ingest)
    job = _job(
        user.id, attachments=[_attachment("broken.pdf", b"x"), _attachment("ok.pdf", b"y")]
    )

    outcome = process_inbound_email(
        job, extractor=ExtractionClient(fake_oracle), notifier=notifier
    )

    assert outcome.failed == 1
    assert outcome.created == 1
    assert notifier.kinds == ["email_completed"]


def test_everything_failing_reports_an_error(fake_oracle, notifier, monkeypatch):
    user = _user()

    def broken_ingest(self, **kwargs):
        raise RuntimeError("database gone")

    monkeypatch.setattr(IngestionService, "ingest", broken_ingest)
    job = _job(user.id, attachments=[_attachment("a.pdf", b"a")])

    outcome = process_inbound_email(
        job, extractor=ExtractionClient(fake_oracle), notifier=notifier
    )

    assert outcome.created == 0
    assert outcome.failed == 1
    assert notifier.kinds == ["email_error"]


def test_body_is_used_when_there_are_no_attachments(fake_oracle, notifier):
    fake_oracle.documents = [FLIGHT]
    user = _user()
    body = "<p>" + "Your flight LY 2371 from Tel Aviv to Budapest is confirmed. " * 2 + "</p>"

    outcome = process_inbound_email(
        _job(user.id, body_html=body), extractor=ExtractionClient(fake_oracle), notifier=notifier
    )

    assert outcome.created == 1
    assert fake_oracle.calls[0][0]["type"] == "text"


def test_missing_user_is_a_no_op(fake_oracle, notifier):
    outcome = process_inbound_email(
        _job(uuid.uuid4()), extractor=ExtractionClient(fake_oracle), notifier=notifier
    )

    assert outcome.created == 0
    assert notifier.sent == []


def test_celery_task_runs_the_job(fake_oracle, notifier, monkeypatch):
    from tripdochub.modules.inbound_email import service as inbound_service

    monkeypatch.setattr(
        inbound_service, "build_extraction_client", lambda: ExtractionClient(fake_oracle)
    )
    monkeypatch.setattr(inbound_service, "build_notifier", lambda: notifier)
    fake_oracle.documents = [FLIGHT]
    user = _user()
    job = _job(user.id, attachments=[_attachment("a.pdf", b"a")])

    result = process_inbound_email_task.delay(job.model_dump(mode="json")).get()

    assert result["created"] == 1
    assert result["notified"] == "email_completed"


def test_attachment_selection_limits(monkeypatch):
    monkeypatch.setattr(settings, "inbound_max_attachment_bytes", 16)
    pdf = IncomingAttachment("a.pdf", "application/pdf", b"%PDF")
    jpeg = IncomingAttachment("b.jpg", "image/jpeg", b"\xff\xd8")
    text = IncomingAttachment("c.txt", "text/plain", b"hello")
    empty = IncomingAttachment("d.pdf", "application/pdf", b"")
    huge = IncomingAttachment("e.pdf", "application/pdf", b"0" * 17)

    assert select_attachments([pdf, text, empty, huge, jpeg]) == [pdf, jpeg]
    many = [IncomingAttachment(f"{i}.pdf", "application/pdf", b"x") for i in range(12)]
    assert len(select_attachments(many)) == settings.inbound_max_attachments


@pytest.mark.parametrize(
    ("html_body", "plain_body", "expected"),
    [
        (None, None, False),
        ("", "   short   ", False),
        ("x" * 51, None, True),
        (None, "y" * 51, True),
        ("x" * 50, None, False),
        ("<p>hi</p>", "y" * 51, True),
        ("x" * 51, "short", True),
    ],
)
def test_should_parse_body(html_body, plain_body, expected):
    assert should_parse_body(html_body, plain_body) is expected


def test_forwarding_address_lookup():
    user = _user()

    assert normalize_address(f'"Trip Inbox" <{user.forwarding_email.upper()}>') == (
        user.forwarding_email
    )
    assert normalize_address("not an address") is None
    with SessionLocal() as session:
        found = get_user_by_forwarding_email(
            session, recipient=f"{user.forwarding_email}, other@example.com"
        )
        assert found.id == user.id
        assert get_user_by_forwarding_email(session, recipient=None) is None
