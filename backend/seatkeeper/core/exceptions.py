"""
Reservation failures as HTTP exceptions.

Each class maps one failure kind to one status code so callers can tell an
ordinary seat conflict (retry with other seats) from an expired hold
(the booking is dead, lock again).
"""

from typing import Optional

from fastapi import HTTPException, status


class ReservationError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Reservation failed"

    def __init__(self, message: Optional[str] = None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(
            status_code=self.status_code,
            detail={"message": self.message, **extra},
        )


class EmptySeatSelectionError(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "At least one seat must be selected"


class InvalidSeatsError(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid seat IDs"

    def __init__(self, invalid_seats: list[int]):
        self.invalid_seats = invalid_seats
        super().__init__(invalid_seats=invalid_seats)


class ShowNotFoundError(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Show not found"


class BookingNotFoundError(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Booking not found"


class SeatsUnavailableError(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Some seats are no longer available"

    def __init__(self, failed_seats: list[int]):
        self.failed_seats = failed_seats
        super().__init__(failed_seats=failed_seats)


class BookingStateError(ReservationError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Booking is not in the expected status"


class BookingExpiredError(ReservationError):
    status_code = status.HTTP_410_GONE
    default_message = "Seat locks have expired. Booking has been cancelled."

    def __init__(self, expired_seats: list[int]):
        self.expired_seats = expired_seats
        super().__init__(expired_seats=expired_seats)


class PaymentFailedError(ReservationError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Payment failed"


class AdmissionDeferred(Exception):
    """Raised by the admission gate; rendered as 429 by its handler."""

    def __init__(self, estimated_wait_seconds: int, token: Optional[str] = None, requeued: bool = False):
        self.estimated_wait_seconds = estimated_wait_seconds
        self.token = token
        self.requeued = requeued
        super().__init__(f"deferred for ~{estimated_wait_seconds}s")


class RateLimited(Exception):
    """Raised by the rate limit gate; rendered as 429 by its handler."""

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"rate limited for {retry_after}s")
