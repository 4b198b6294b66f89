from __future__ import annotations

import uuid
from datetime import date, datetime

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from tripdochub.core.logging import get_logger, log_event
from tripdochub.core.storage import ObjectStorage
from tripdochub.modules.documents.models import Document
from tripdochub.modules.documents.storage import release_stored_objects
from tripdochub.modules.trips.models import Trip
from tripdochub.modules.trips.schemas import TripDeleteMode

logger = get_logger(__name__)


def find_matching_trip(
    session: Session, *, user_id: uuid.UUID, on: date | datetime | None
) -> Trip | None:
    """
    Non-archived trip of `user_id` whose [start_date, end_date] contains `on`.

    Timestamps are compared by their local calendar day, i.e. the date in whatever offset
    they carry, so an evening departure stays on the day printed on the ticket. When trips
    overlap, the one that started most recently wins (ties broken by id).
    """
    if on is None:
        return None
    day = on.date() if isinstance(on, datetime) else on
    return session.scalar(
        select(Trip)
        .where(
            Trip.user_id == user_id,
            Trip.is_archived.is_(False),
            Trip.start_date <= day,
            Trip.end_date >= day,
        )
        .order_by(Trip.start_date.desc(), Trip.id)
        .limit(1)
    )


def create_trip(
    session: Session, *, user_id: uuid.UUID, name: str, start_date: date, end_date: date
) -> Trip:
    trip = Trip(
        user_id=user_id,
        name=name.strip(),
        start_date=start_date,
        end_date=end_date,
        is_archived=False,
    )
    session.add(trip)
    session.commit()
    session.refresh(trip)
    log_event(logger, "trip.created", trip_id=str(trip.id))
    return trip


def list_trips(
    session: Session, *, user_id: uuid.UUID, include_archived: bool = False
) -> list[Trip]:
    stmt = select(Trip).where(Trip.user_id == user_id)
    if not include_archived:
        stmt = stmt.where(Trip.is_archived.is_(False))
    return list(session.scalars(stmt.order_by(Trip.start_date.desc(), Trip.id)))


def document_counts(session: Session, *, trip_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
    if not trip_ids:
        return {}
    rows = session.execute(
        select(Document.trip_id, func.count(Document.id))
        .where(Document.trip_id.in_(trip_ids))
        .group_by(Document.trip_id)
    )
    return {trip_id: int(n) for trip_id, n in rows}


def get_trip_for_user(session: Session, *, trip_id: uuid.UUID, user_id: uuid.UUID) -> Trip:
    trip = session.scalar(select(Trip).where(Trip.id == trip_id))
    # Foreign trips are reported as missing.
    if not trip or trip.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    return trip


def update_trip(session: Session, *, trip: Trip, **changes) -> Trip:
    for field, value in changes.items():
        if value is None:
            continue
        if field == "name":
            value = value.strip()
        setattr(trip, field, value)
    if trip.end_date < trip.start_date:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )
    session.add(trip)
    session.commit()
    session.refresh(trip)
    return trip


def delete_trip(
    session: Session,
    *,
    trip: Trip,
    mode: TripDeleteMode = TripDeleteMode.DETACH,
    storage: ObjectStorage | None = None,
) -> int:
    """
    Delete `trip`; its documents go back to the inbox, or are deleted in cascade mode.

    Cascaded documents release their stored files once no other document points at them.
    """
    storage_keys: list[str] = []
    if mode == TripDeleteMode.CASCADE:
        storage_keys = list(
            session.scalars(
                select(Document.storage_key)
                .where(Document.trip_id == trip.id, Document.storage_key.is_not(None))
                .distinct()
            )
        )
        affected = session.execute(delete(Document).where(Document.trip_id == trip.id)).rowcount
    else:
        affected = session.execute(
            update(Document).where(Document.trip_id == trip.id).values(trip_id=None)
        ).rowcount
    trip_id = str(trip.id)
    session.delete(trip)
    session.commit()
    log_event(logger, "trip.deleted", trip_id=trip_id, mode=mode.value, documents=affected)
    release_stored_objects(session, storage=storage, keys=storage_keys)
    return int(affected or 0)
