from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tripdochub.api.deps import get_current_user, get_storage
from tripdochub.core.db import db_session
from tripdochub.core.storage import ObjectStorage
from tripdochub.modules.identity.models import User
from tripdochub.modules.trips.models import Trip
from tripdochub.modules.trips.schemas import TripCreate, TripDeleteMode, TripOut, TripUpdate
from tripdochub.modules.trips.service import (
    create_trip,
    delete_trip,
    document_counts,
    get_trip_for_user,
    list_trips,
    update_trip,
)

router = APIRouter(tags=["trips"])


def _out(trip: Trip, count: int = 0) -> TripOut:
    out = TripOut.model_validate(trip, from_attributes=True)
    out.document_count = count
    return out


@router.post("/trips", response_model=TripOut, status_code=status.HTTP_201_CREATED)
def create_trip_endpoint(
    payload: TripCreate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> TripOut:
    trip = create_trip(
        session,
        user_id=user.id,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    return _out(trip)


@router.get("/trips", response_model=list[TripOut])
def list_trips_endpoint(
    include_archived: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[TripOut]:
    trips = list_trips(session, user_id=user.id, include_archived=include_archived)
    counts = document_counts(session, trip_ids=[t.id for t in trips])
    return [_out(t, counts.get(t.id, 0)) for t in trips]


@router.get("/trips/{trip_id}", response_model=TripOut)
def get_trip_endpoint(
    trip_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> TripOut:
    trip = get_trip_for_user(session, trip_id=trip_id, user_id=user.id)
    counts = document_counts(session, trip_ids=[trip.id])
    return _out(trip, counts.get(trip.id, 0))


@router.patch("/trips/{trip_id}", response_model=TripOut)
def update_trip_endpoint(
    trip_id: uuid.UUID,
    payload: TripUpdate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> TripOut:
    trip = get_trip_for_user(session, trip_id=trip_id, user_id=user.id)
    updated = update_trip(session, trip=trip, **payload.model_dump(exclude_unset=True))
    counts = document_counts(session, trip_ids=[updated.id])
    return _out(updated, counts.get(updated.id, 0))


@router.delete("/trips/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_trip_endpoint(
    trip_id: uuid.UUID,
    mode: TripDeleteMode = TripDeleteMode.DETACH,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
) -> None:
    trip = get_trip_for_user(session, trip_id=trip_id, user_id=user.id)
    delete_trip(session, trip=trip, mode=mode, storage=storage)
