from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class TripDeleteMode(str, Enum):
    DETACH = "detach"
    CASCADE = "cascade"


class TripCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_range(self) -> TripCreate:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TripUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    start_date: date | None = None
    end_date: date | None = None
    is_archived: bool | None = None


class TripOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    start_date: date
    end_date: date
    is_archived: bool
    document_count: int = 0
    created_at: datetime
    updated_at: datetime
