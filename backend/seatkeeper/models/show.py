"""
Events, their scheduled shows, and per-show seat availability.

Key design decisions:
- One ShowSeat row per venue seat per show, created with the show and
  never deleted while the show exists
- ShowSeat is the only row the reservation path mutates; its composite
  primary key (show_id, seat_id) is what SELECT ... FOR UPDATE locks
- locked_at is set exactly while status is LOCKED (enforced by a CHECK)
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from seatkeeper.db.base import Base, TimestampMixin


class SeatStatus:
    AVAILABLE = "AVAILABLE"
    LOCKED = "LOCKED"
    BOOKED = "BOOKED"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)

    shows = relationship("Show", back_populates="event")

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title})>"


class Show(Base, TimestampMixin):
    __tablename__ = "shows"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    event = relationship("Event", back_populates="shows")
    venue = relationship("Venue")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_show_time_order"),
        CheckConstraint("price >= 0", name="check_show_price_non_negative"),
        Index("ix_shows_start_time", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Show(id={self.id}, event={self.event_id}, venue={self.venue_id})>"


class ShowSeat(Base):
    __tablename__ = "show_seats"

    show_id = Column(Integer, ForeignKey("shows.id"), primary_key=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), primary_key=True)
    status = Column(String(20), nullable=False, default=SeatStatus.AVAILABLE)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    seat = relationship("Seat")

    __table_args__ = (
        CheckConstraint(
            "status IN ('AVAILABLE', 'LOCKED', 'BOOKED')", name="check_show_seat_status"
        ),
        CheckConstraint(
            "(status = 'LOCKED') = (locked_at IS NOT NULL)", name="check_locked_at_iff_locked"
        ),
        CheckConstraint(
            "(status = 'AVAILABLE') = (booking_id IS NULL)", name="check_owner_iff_held"
        ),
        Index("ix_show_seats_booking_id", "booking_id"),
    )

    def __repr__(self) -> str:
        return f"<ShowSeat(show={self.show_id}, seat={self.seat_id}, status={self.status})>"
