from seatkeeper.schemas.booking import (
    SeatDetail, SeatLockRequest, SeatLockResponse, BookingActionRequest,
    ConfirmBookingResponse, CancelBookingResponse, BookingResponse,
    PaymentRequest, PaymentResponse,
)
from seatkeeper.schemas.show import ShowResponse, SeatStatusEntry, SeatMapResponse

__all__ = [
    "SeatDetail", "SeatLockRequest", "SeatLockResponse", "BookingActionRequest",
    "ConfirmBookingResponse", "CancelBookingResponse", "BookingResponse",
    "PaymentRequest", "PaymentResponse",
    "ShowResponse", "SeatStatusEntry", "SeatMapResponse",
]
