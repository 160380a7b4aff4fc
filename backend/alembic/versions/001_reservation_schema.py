"""Reservation schema: users, venues, seats, events, shows, show_seats, bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
    )
    op.create_index("ix_venues_id", "venues", ["id"])

    op.create_table(
        "seats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("seat_row", sa.String(10), nullable=False),
        sa.Column("seat_number", sa.Integer(), nullable=False),
        sa.UniqueConstraint("venue_id", "seat_row", "seat_number", name="uq_venue_seat_position"),
    )
    op.create_index("ix_seats_id", "seats", ["id"])
    op.create_index("ix_seats_venue_id", "seats", ["venue_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_id", "events", ["id"])

    op.create_table(
        "shows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_time > start_time", name="check_show_time_order"),
        sa.CheckConstraint("price >= 0", name="check_show_price_non_negative"),
    )
    op.create_index("ix_shows_id", "shows", ["id"])
    op.create_index("ix_shows_event_id", "shows", ["event_id"])
    op.create_index("ix_shows_venue_id", "shows", ["venue_id"])
    op.create_index("ix_shows_start_time", "shows", ["start_time"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("held_since", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED')", name="check_booking_status"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_show_id", "bookings", ["show_id"])
    # The sweeper's scan: PENDING bookings whose hold started before a cutoff.
    # Without it every sweep reads the whole bookings table.
    op.create_index("ix_bookings_status_held_since", "bookings", ["status", "held_since"])

    op.create_table(
        "show_seats",
        sa.Column("show_id", sa.Integer(), sa.ForeignKey("shows.id"), primary_key=True),
        sa.Column("seat_id", sa.Integer(), sa.ForeignKey("seats.id"), primary_key=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('AVAILABLE', 'LOCKED', 'BOOKED')", name="check_show_seat_status"
        ),
        sa.CheckConstraint(
            "(status = 'LOCKED') = (locked_at IS NOT NULL)", name="check_locked_at_iff_locked"
        ),
        sa.CheckConstraint(
            "(status = 'AVAILABLE') = (booking_id IS NULL)", name="check_owner_iff_held"
        ),
    )
    # Confirm, cancel and the sweeper all look seats up by owning booking
    op.create_index("ix_show_seats_booking_id", "show_seats", ["booking_id"])


def downgrade() -> None:
    op.drop_table("show_seats")
    op.drop_table("bookings")
    op.drop_table("shows")
    op.drop_table("events")
    op.drop_table("seats")
    op.drop_table("venues")
    op.drop_table("users")
