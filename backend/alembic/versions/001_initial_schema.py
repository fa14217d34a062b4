"""Initial schema: bookings, waitlist entries, subscriptions, push tokens.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_SLOT_PREDICATE = sa.text("status IN ('pending', 'confirmed')")


def upgrade() -> None:
    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("sub_resource_id", sa.String(64), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("user_display_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("origin", sa.String(20), nullable=False, server_default=sa.text("'direct'")),
        sa.Column("origin_waitlist_entry_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        sa.CheckConstraint("payment_status IN ('pending', 'paid', 'failed')", name="check_booking_payment_status"),
        sa.CheckConstraint("origin IN ('direct', 'waitlist_auto')", name="check_booking_origin"),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_slot", "bookings", ["resource_id", "date", "start_time", "end_time"])
    # ONE ACTIVE BOOKING PER SLOT: the allocator's re-read catches the common case,
    # this partial index catches two inserts racing past the re-read. The loser
    # gets a unique violation and its transaction rolls back whole.
    op.create_index(
        "uq_bookings_active_slot",
        "bookings",
        ["resource_id", "date", "start_time", "end_time"],
        unique=True,
        postgresql_where=ACTIVE_SLOT_PREDICATE,
        sqlite_where=ACTIVE_SLOT_PREDICATE,
    )

    # Waitlist entries table
    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("user_display_name", sa.String(255), nullable=True),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time_slot", sa.String(5), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'waiting'")),
        sa.Column("booking_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('waiting', 'booked', 'expired', 'cancelled')",
            name="check_waitlist_status",
        ),
    )
    op.create_index("ix_waitlist_entries_user_id", "waitlist_entries", ["user_id"])
    # Covers the allocator query: WHERE resource_id, date, status ORDER BY created_at
    op.create_index(
        "ix_waitlist_slot_fifo",
        "waitlist_entries",
        ["resource_id", "date", "status", "created_at"],
    )
    # Covers the nightly sweep: WHERE status = 'waiting' AND date < today
    op.create_index("ix_waitlist_status_date", "waitlist_entries", ["status", "date"])

    # Subscriptions (written by billing, read for tier lookup)
    op.create_table(
        "subscriptions",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'inactive'")),
        sa.Column("tier", sa.String(20), nullable=False, server_default=sa.text("'free'")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Push tokens
    op.create_table(
        "push_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("token", sa.String(256), nullable=False),
        sa.Column("platform", sa.String(16), nullable=False, server_default=sa.text("'expo'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("token", name="uq_push_tokens_token"),
    )
    op.create_index("ix_push_tokens_user_id", "push_tokens", ["user_id"])


def downgrade() -> None:
    op.drop_table("push_tokens")
    op.drop_table("subscriptions")
    op.drop_table("waitlist_entries")
    op.drop_table("bookings")
