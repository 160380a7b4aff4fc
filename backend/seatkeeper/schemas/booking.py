"""
Pydantic schemas for reservation request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from seatkeeper.models.show import Show
from seatkeeper.models.venue import Seat


class SeatDetail(BaseModel):
    seat_id: int
    seat_row: str
    seat_number: int

    @classmethod
    def from_seat(cls, seat: Seat) -> "SeatDetail":
        return cls(seat_id=seat.id, seat_row=seat.seat_row, seat_number=seat.seat_number)


class SeatLockRequest(BaseModel):
    show_id: int
    seat_ids: list[int] = Field(..., min_length=1)


class SeatLockResponse(BaseModel):
    message: str = "Seats locked successfully"
    booking_id: int
    locked_seats: list[SeatDetail]
    expires_in: int


class BookingActionRequest(BaseModel):
    booking_id: int


class ConfirmBookingResponse(BaseModel):
    message: str = "Booking confirmed successfully"
    booking_id: int
    confirmed_seats: list[SeatDetail]


class CancelBookingResponse(BaseModel):
    message: str = "Booking cancelled successfully"
    booking_id: int
    status: str
    cancelled_seats: list[SeatDetail]


class BookingShowSummary(BaseModel):
    start_time: datetime
    end_time: datetime
    price: Decimal
    event_title: str
    venue_name: str
    venue_address: Optional[str] = None

    @classmethod
    def from_show(cls, show: Show) -> "BookingShowSummary":
        return cls(
            start_time=show.start_time,
            end_time=show.end_time,
            price=show.price,
            event_title=show.event.title,
            venue_name=show.venue.name,
            venue_address=show.venue.address,
        )


class BookingResponse(BaseModel):
    id: int
    user_id: int
    show_id: int
    status: str
    held_since: datetime
    created_at: datetime
    seats: list[SeatDetail] = []
    show: Optional[BookingShowSummary] = None


class PaymentRequest(BaseModel):
    booking_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)


class PaymentResponse(BaseModel):
    message: str = "Payment successful"
    transaction_id: str
    amount: Decimal
