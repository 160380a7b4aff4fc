from seatkeeper.models.user import User
from seatkeeper.models.venue import Venue, Seat
from seatkeeper.models.show import Event, Show, ShowSeat, SeatStatus
from seatkeeper.models.booking import Booking, BookingStatus

__all__ = [
    "User", "Venue", "Seat", "Event", "Show", "ShowSeat", "SeatStatus",
    "Booking", "BookingStatus",
]
