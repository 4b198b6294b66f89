from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from tripdochub.core.db import SessionLocal
from tripdochub.core.fingerprint import fingerprint_bytes
from tripdochub.modules.credits.service import get_balance
from tripdochub.modules.documents.models import Document, DocumentCategory, DocumentSource
from tripdochub.modules.extraction.client import ExtractionClient
from tripdochub.modules.identity.service import create_user
from tripdochub.modules.ingestion.schemas import EmailBodyItem, FileItem, IngestStatus
from tripdochub.modules.ingestion.service import IngestionService
from tripdochub.modules.trips.service import create_trip

OUTBOUND = {
    "category": "flight",
    "documentType": "Boarding Pass",
    "title": "TLV to BUD",
    "details": {"departureAirport": "TLV", "arrivalAirport": "BUD"},
    "documentDate": "2026-05-10T06:00:00Z",
}
RETURN = {
    "category": "flight",
    "documentType": "Boarding Pass",
    "title": "BUD to TLV",
    "details": {"departureAirport": "BUD", "arrivalAirport": "TLV"},
    "documentDate": "2026-05-15T18:00:00Z",
}
HOTEL = {
    "category": "accommodation",
    "documentType": "Hotel Reservation",
    "title": "Hotel Gellert",
    "details": {"hotelName": "Gellert", "address": "Szent Gellert ter 1, Budapest"},
    "documentDate": "2026-05-10",
}


def _file(body: bytes = b"%PDF itinerary") -> FileItem:
    return FileItem(
        url="https://files.example/itinerary.pdf",
        mime_type="application/pdf",
        filename="itinerary.pdf",
        storage_key="documents/u/itinerary.pdf",
        fingerprint=fingerprint_bytes(body),
    )


def _document_count(session, user_id) -> int:
    return session.scalar(select(func.count(Document.id)).where(Document.user_id == user_id))


def test_multi_booking_file_is_split_and_auto_assigned(fake_oracle):
    fake_oracle.documents = [OUTBOUND, RETURN]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com", credits=5)
        trip = create_trip(
            session,
            user_id=user.id,
            name="Budapest",
            start_date=date(2026, 5, 10),
            end_date=date(2026, 5, 15),
        )

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        assert result.status == IngestStatus.CREATED
        assert len(result.created_document_ids) == 2
        assert result.auto_assigned_trip_id == trip.id
        assert result.auto_assigned_trip_name == "Budapest"
        assert result.needs_manual_assignment is False
        assert get_balance(session, user_id=user.id).credits == 3

        docs = list(session.scalars(select(Document).where(Document.user_id == user.id)))
        assert {d.trip_id for d in docs} == {trip.id}
        assert {d.content_hash for d in docs} == {fingerprint_bytes(b"%PDF itinerary")}
        for doc in docs:
            assert doc.category == DocumentCategory.FLIGHT
            assert doc.source == DocumentSource.UPLOAD
            assert doc.storage_key == "documents/u/itinerary.pdf"
            assert doc.original_file_name == "itinerary.pdf"
            assert doc.is_read is False
            assert "Airport" in doc.details["departureAddress"]


def test_resubmission_is_a_duplicate_and_free(fake_oracle):
    fake_oracle.documents = [HOTEL]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com", credits=5)
        service = IngestionService(session, extractor=ExtractionClient(fake_oracle))

        first = service.ingest(user_id=user.id, source=DocumentSource.UPLOAD, item=_file())
        second = service.ingest(user_id=user.id, source=DocumentSource.EMAIL, item=_file())

        assert first.status == IngestStatus.CREATED
        assert second.status == IngestStatus.DUPLICATE
        assert second.duplicate_of == first.created_document_ids[0]
        assert second.created_document_ids == []
        assert len(fake_oracle.calls) == 1
        assert _document_count(session, user.id) == 1
        assert get_balance(session, user_id=user.id).credits == 4


def test_same_file_for_another_user_is_not_a_duplicate(fake_oracle):
    fake_oracle.documents = [HOTEL]
    with SessionLocal() as session:
        alice = create_user(session, email="alice@example.com")
        bob = create_user(session, email="bob@example.com")
        service = IngestionService(session, extractor=ExtractionClient(fake_oracle))

        service.ingest(user_id=alice.id, source=DocumentSource.UPLOAD, item=_file())
        result = service.ingest(user_id=bob.id, source=DocumentSource.UPLOAD, item=_file())

        assert result.status == IngestStatus.CREATED


def test_credits_run_out_part_way(fake_oracle):
    fake_oracle.documents = [OUTBOUND, RETURN, HOTEL]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com", credits=1)

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        assert result.status == IngestStatus.CREDITS_EXHAUSTED
        assert result.credits_exhausted
        assert len(result.created_document_ids) == 1
        assert _document_count(session, user.id) == 1
        assert get_balance(session, user_id=user.id).credits == 0


def test_empty_balance_is_refused_before_extraction(fake_oracle):
    fake_oracle.documents = [HOTEL]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com", credits=0)

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        assert result.status == IngestStatus.INSUFFICIENT_CREDITS
        assert fake_oracle.calls == []
        assert _document_count(session, user.id) == 0


def test_unmatched_document_goes_to_inbox(fake_oracle):
    fake_oracle.documents = [HOTEL]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com")
        create_trip(
            session,
            user_id=user.id,
            name="Later",
            start_date=date(2026, 9, 1),
            end_date=date(2026, 9, 5),
        )

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.CAMERA, item=_file()
        )

        assert result.needs_manual_assignment is True
        assert result.auto_assigned_trip_id is None
        doc = session.get(Document, result.created_document_ids[0])
        assert doc.trip_id is None
        assert doc.source == DocumentSource.CAMERA


def test_unknown_category_is_stored_as_other(fake_oracle):
    fake_oracle.documents = [{"category": "banana", "title": "Mystery"}]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com")

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        [doc_id] = result.created_document_ids
        session.expire_all()
        doc = session.get(Document, doc_id)
        assert doc.category == DocumentCategory.OTHER
        assert doc.title == "Mystery"


def test_local_departure_time_files_into_its_trip(fake_oracle):
    fake_oracle.documents = [
        {
            "category": "flight",
            "title": "YYZ to TLV",
            "details": {"departureAirport": "YYZ"},
            "documentDate": "2025-08-22T20:00:00-05:00",
        }
    ]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com")
        trip = create_trip(
            session,
            user_id=user.id,
            name="Toronto",
            start_date=date(2025, 8, 15),
            end_date=date(2025, 8, 22),
        )

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        assert result.auto_assigned_trip_id == trip.id


def test_explicit_trip_overrides_matching(fake_oracle):
    fake_oracle.documents = [OUTBOUND, HOTEL]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com")
        create_trip(
            session,
            user_id=user.id,
            name="Budapest",
            start_date=date(2026, 5, 10),
            end_date=date(2026, 5, 15),
        )
        chosen = create_trip(
            session,
            user_id=user.id,
            name="Work",
            start_date=date(2026, 1, 1),
            end_date=date(2026, 1, 2),
        )

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file(), trip_id=chosen.id
        )

        assert result.auto_assigned_trip_id is None
        assert result.needs_manual_assignment is False
        trip_ids = set(
            session.scalars(select(Document.trip_id).where(Document.user_id == user.id))
        )
        assert trip_ids == {chosen.id}


def test_explicit_trip_of_another_user_is_not_found(fake_oracle):
    fake_oracle.documents = [HOTEL]
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com")
        other = create_user(session, email="other@example.com")
        foreign = create_trip(
            session,
            user_id=other.id,
            name="Theirs",
            start_date=date(2026, 5, 10),
            end_date=date(2026, 5, 15),
        )

        with pytest.raises(HTTPException) as exc:
            IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
                user_id=user.id, source=DocumentSource.UPLOAD, item=_file(), trip_id=foreign.id
            )

        assert exc.value.status_code == 404
        assert fake_oracle.calls == []
        assert get_balance(session, user_id=user.id).credits == 20


def test_no_bookings_costs_nothing(fake_oracle):
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com", credits=3)

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        assert result.status == IngestStatus.NO_BOOKINGS
        assert get_balance(session, user_id=user.id).credits == 3


def test_extraction_failure_still_files_a_generic_document(fake_oracle):
    fake_oracle.error = RuntimeError("oracle down")
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com", credits=3)

        result = IngestionService(session, extractor=ExtractionClient(fake_oracle)).ingest(
            user_id=user.id, source=DocumentSource.UPLOAD, item=_file()
        )

        assert result.status == IngestStatus.CREATED
        doc = session.get(Document, result.created_document_ids[0])
        assert doc.category == DocumentCategory.OTHER
        assert doc.title == "Uploaded Document"
        assert doc.trip_id is None
        assert get_balance(session, user_id=user.id).credits == 2


def test_email_body_ingestion(fake_oracle):
    fake_oracle.documents = [HOTEL]
    html_body = "<p>" + "Your reservation at Hotel Gellert is confirmed. " * 3 + "</p>"
    item = EmailBodyItem(html=html_body, plain=None, subject="Booking confirmed", sender="x@y")
    with SessionLocal() as session:
        user = create_user(session, email="traveler@example.com")
        service = IngestionService(session, extractor=ExtractionClient(fake_oracle))

        result = service.ingest(
            user_id=user.id,
            source=DocumentSource.EMAIL,
            item=item,
            email_subject="Booking confirmed",
        )
        again = service.ingest(user_id=user.id, source=DocumentSource.EMAIL, item=item)

        doc = session.get(Document, result.created_document_ids[0])
        assert doc.source == DocumentSource.EMAIL
        assert doc.email_subject == "Booking confirmed"
        assert doc.storage_key is None
        assert doc.original_file_url is None
        assert again.status == IngestStatus.DUPLICATE
