from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tripdochub.core.models import Base, Timestamped, UUIDPrimaryKey


class PromoCode(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "credits_promo_code"

    code: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    credits: Mapped[int] = mapped_column(Integer)
    # NULL == unlimited
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, default=0)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class PromoRedemption(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "credits_promo_redemption"
    __table_args__ = (
        UniqueConstraint("user_id", "promo_code_id", name="uq_credits_promo_redemption_user_code"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    promo_code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("credits_promo_code.id")
    )
    credits_added: Mapped[int] = mapped_column(Integer)
