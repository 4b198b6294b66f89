from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tripdochub.core.config import settings
from tripdochub.core.models import Base, Timestamped, UUIDPrimaryKey


class User(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "identity_user"

    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Unique inbound address, e.g. trip-ab12cd34@in.mytripdochub.com
    forwarding_email: Mapped[str] = mapped_column(String(320), unique=True, index=True)

    # Only mutated through modules.credits.service.
    credits: Mapped[int] = mapped_column(
        Integer, default=lambda: settings.default_free_credits
    )
    subscription_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    push_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
