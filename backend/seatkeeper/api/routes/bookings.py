"""
Reservation endpoints: lock seats, pay, confirm, cancel.
"""

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from seatkeeper.db.session import get_db
from seatkeeper.infrastructure.redis_client import get_redis
from seatkeeper.schemas.booking import (
    BookingActionRequest,
    BookingResponse,
    BookingShowSummary,
    CancelBookingResponse,
    ConfirmBookingResponse,
    PaymentRequest,
    PaymentResponse,
    SeatDetail,
    SeatLockRequest,
    SeatLockResponse,
)
from seatkeeper.services.booking_service import (
    cancel_booking,
    confirm_booking,
    get_user_bookings,
    lock_seats,
)
from seatkeeper.services.payment_service import simulate_payment
from seatkeeper.core.config import get_settings
from seatkeeper.core.security import get_current_user_id

settings = get_settings()
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/lock", response_model=SeatLockResponse)
async def lock_seats_endpoint(
    request: SeatLockRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lock_store: redis.Redis = Depends(get_redis),
):
    """
    Hold seats for the hold window under a new PENDING booking.

    All-or-nothing: if any seat is taken the response is 409 with
    `failed_seats`, and no seat changes state.
    """
    result = await lock_seats(db, lock_store, user_id, request.show_id, request.seat_ids)
    return SeatLockResponse(
        booking_id=result.booking.id,
        locked_seats=[SeatDetail.from_seat(s) for s in result.seats],
        expires_in=settings.HOLD_WINDOW_SECONDS,
    )


@router.post("/payment/simulate", response_model=PaymentResponse)
async def simulate_payment_endpoint(
    request: PaymentRequest,
    user_id: int = Depends(get_current_user_id),
):
    """Stand-in payment step. A success here is the client's cue to confirm."""
    transaction_id = await simulate_payment(request.booking_id, request.amount)
    return PaymentResponse(transaction_id=transaction_id, amount=request.amount)


@router.post("/confirm", response_model=ConfirmBookingResponse)
async def confirm_booking_endpoint(
    request: BookingActionRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lock_store: redis.Redis = Depends(get_redis),
):
    """
    Confirm a PENDING booking after payment.
    Returns 410 if the hold lapsed; the booking is then cancelled for good.
    """
    result = await confirm_booking(db, lock_store, request.booking_id, user_id)
    return ConfirmBookingResponse(
        booking_id=result.booking.id,
        confirmed_seats=[SeatDetail.from_seat(s) for s in result.seats],
    )


@router.post("/cancel", response_model=CancelBookingResponse)
async def cancel_booking_endpoint(
    request: BookingActionRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lock_store: redis.Redis = Depends(get_redis),
):
    """Cancel a booking and release its seats. Already-cancelled returns 400."""
    result = await cancel_booking(db, lock_store, request.booking_id, user_id)
    return CancelBookingResponse(
        booking_id=result.booking.id,
        status=result.booking.status,
        cancelled_seats=[SeatDetail.from_seat(s) for s in result.seats],
    )


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    bookings = await get_user_bookings(db, user_id)
    return [
        BookingResponse(
            id=entry.booking.id,
            user_id=entry.booking.user_id,
            show_id=entry.booking.show_id,
            status=entry.booking.status,
            held_since=entry.booking.held_since,
            created_at=entry.booking.created_at,
            seats=[SeatDetail.from_seat(s) for s in entry.seats],
            show=BookingShowSummary.from_show(entry.booking.show),
        )
        for entry in bookings
    ]
