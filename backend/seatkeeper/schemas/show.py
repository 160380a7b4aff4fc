"""
Pydantic schemas for show browsing.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class ShowResponse(BaseModel):
    id: int
    event_id: int
    venue_id: int
    start_time: datetime
    end_time: datetime
    price: Decimal
    available_seats: int
    total_seats: int


class SeatStatusEntry(BaseModel):
    seat_id: int
    seat_row: str
    seat_number: int
    status: str


class SeatMapResponse(BaseModel):
    show_id: int
    seats: list[SeatStatusEntry]
