"""
Booking groups the seats one requester holds for one show.

Key design decisions:
- Created PENDING by a seat lock; CONFIRMED and CANCELLED are terminal
- held_since is written in the same transaction and with the same value as
  every locked_at of the booking's seats, so confirm and the expiry sweeper
  judge expiry against one clock
- Rows are never deleted; cancelled bookings stay for history
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from seatkeeper.db.base import Base, TimestampMixin


class BookingStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    show_id = Column(Integer, ForeignKey("shows.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING)
    held_since = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="bookings")
    show = relationship("Show")

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED')", name="check_booking_status"
        ),
        # Sweep query: WHERE status = 'PENDING' AND held_since < :cutoff
        Index("ix_bookings_status_held_since", "status", "held_since"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, show={self.show_id}, status={self.status})>"
