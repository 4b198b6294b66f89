from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tripdochub.core.models import Base, Timestamped, UUIDPrimaryKey


class DocumentCategory(str, enum.Enum):
    FLIGHT = "flight"
    CAR_RENTAL = "carRental"
    ACCOMMODATION = "accommodation"
    MEDICAL = "medical"
    EVENT = "event"
    OTHER = "other"

    @classmethod
    def coerce(cls, raw: object) -> DocumentCategory:
        if isinstance(raw, str):
            for member in cls:
                if member.value == raw.strip():
                    return member
        return cls.OTHER


class DocumentSource(str, enum.Enum):
    UPLOAD = "upload"
    EMAIL = "email"
    CAMERA = "camera"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [m.value for m in enum_cls]


class Document(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "documents_document"
    __table_args__ = (Index("ix_documents_document_user_content_hash", "user_id", "content_hash"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    # NULL trip_id == the user's inbox
    trip_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("trips_trip.id"), nullable=True, index=True
    )

    category: Mapped[DocumentCategory] = mapped_column(
        Enum(DocumentCategory, native_enum=False, values_callable=_enum_values, length=20),
        index=True,
    )
    document_type: Mapped[str] = mapped_column(String(100))
    title: Mapped[str] = mapped_column(String(255))
    subtitle: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    document_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    original_file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_file_mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    storage_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    source: Mapped[DocumentSource] = mapped_column(
        Enum(DocumentSource, native_enum=False, values_callable=_enum_values, length=20),
        default=DocumentSource.UPLOAD,
    )
    email_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)

    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)

    trip = relationship("Trip")
    user = relationship("User")
