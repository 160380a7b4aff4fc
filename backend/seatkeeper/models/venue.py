"""
Venues and their physical seats.

A seat's identity is (venue, row, number) and never changes; per-show
availability lives in ShowSeat, not here.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from seatkeeper.db.base import Base


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)

    seats = relationship("Seat", back_populates="venue", order_by="Seat.id")

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name})>"


class Seat(Base):
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    seat_row = Column(String(10), nullable=False)
    seat_number = Column(Integer, nullable=False)

    venue = relationship("Venue", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("venue_id", "seat_row", "seat_number", name="uq_venue_seat_position"),
    )

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, venue={self.venue_id}, {self.seat_row}{self.seat_number})>"
