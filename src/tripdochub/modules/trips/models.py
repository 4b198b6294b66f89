from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripdochub.core.models import Base, Timestamped, UUIDPrimaryKey


class Trip(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "trips_trip"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    # Inclusive on both ends; start <= end is validated by the API layer.
    start_date: Mapped[date] = mapped_column(Date, index=True)
    end_date: Mapped[date] = mapped_column(Date, index=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)

    user = relationship("User")
