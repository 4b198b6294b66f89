"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "identity_user",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("forwarding_email", sa.String(length=320), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("subscription_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("push_token", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("email"),
    )
    op.create_index(
        "ix_identity_user_forwarding_email", "identity_user", ["forwarding_email"], unique=True
    )

    op.create_table(
        "trips_trip",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "user_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_trips_trip_user_id", "trips_trip", ["user_id"])
    op.create_index("ix_trips_trip_start_date", "trips_trip", ["start_date"])
    op.create_index("ix_trips_trip_end_date", "trips_trip", ["end_date"])

    op.create_table(
        "documents_document",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "user_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False
        ),
        sa.Column("trip_id", sa.Uuid(as_uuid=True), sa.ForeignKey("trips_trip.id"), nullable=True),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("document_type", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("subtitle", sa.String(length=255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("document_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_file_url", sa.Text(), nullable=True),
        sa.Column("original_file_name", sa.String(length=255), nullable=True),
        sa.Column("original_file_mime_type", sa.String(length=100), nullable=True),
        sa.Column("storage_key", sa.String(length=1024), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("email_subject", sa.String(length=500), nullable=True),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_documents_document_user_id", "documents_document", ["user_id"])
    op.create_index("ix_documents_document_trip_id", "documents_document", ["trip_id"])
    op.create_index("ix_documents_document_category", "documents_document", ["category"])
    op.create_index(
        "ix_documents_document_user_content_hash",
        "documents_document",
        ["user_id", "content_hash"],
    )

    op.create_table(
        "credits_promo_code",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_credits_promo_code_code", "credits_promo_code", ["code"], unique=True)

    op.create_table(
        "credits_promo_redemption",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "user_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False
        ),
        sa.Column(
            "promo_code_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("credits_promo_code.id"),
            nullable=False,
        ),
        sa.Column("credits_added", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "promo_code_id", name="uq_credits_promo_redemption_user_code"
        ),
    )
    op.create_index(
        "ix_credits_promo_redemption_user_id", "credits_promo_redemption", ["user_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_credits_promo_redemption_user_id", table_name="credits_promo_redemption")
    op.drop_table("credits_promo_redemption")
    op.drop_index("ix_credits_promo_code_code", table_name="credits_promo_code")
    op.drop_table("credits_promo_code")
    op.drop_index("ix_documents_document_user_content_hash", table_name="documents_document")
    op.drop_index("ix_documents_document_category", table_name="documents_document")
    op.drop_index("ix_documents_document_trip_id", table_name="documents_document")
    op.drop_index("ix_documents_document_user_id", table_name="documents_document")
    op.drop_table("documents_document")
    op.drop_index("ix_trips_trip_end_date", table_name="trips_trip")
    op.drop_index("ix_trips_trip_start_date", table_name="trips_trip")
    op.drop_index("ix_trips_trip_user_id", table_name="trips_trip")
    op.drop_table("trips_trip")
    op.drop_index("ix_identity_user_forwarding_email", table_name="identity_user")
    op.drop_table("identity_user")
