"""
Reservation engine: lock, confirm and cancel seats for a show.

CONCURRENCY STRATEGY: Row Locks + Distributed Seat Locks
========================================================

Problem:
  Two users try to lock the same seat simultaneously.
  Both read status=AVAILABLE, both write LOCKED, both get a booking.
  Result: Overselling.

Solution (lock):
  1. SELECT ... FROM show_seats WHERE show_id = :show AND seat_id IN (...)
     ORDER BY seat_id FOR UPDATE
     Serializes attempts on overlapping seats that share the database.
     Rows are always locked in seat order so overlapping sets cannot deadlock.
  2. Any seat not AVAILABLE -> 409 with the failing seat ids, nothing written.
  3. SET seat_lock:{show}:{seat} <user> NX EX <hold window> for every seat.
     Tie-breaker for attempts that passed step 1 from transactions the row
     locks did not order. One failure releases every key taken so far.
  4. INSERT booking (PENDING), upsert show_seats to LOCKED, COMMIT.

  Any exception after step 3 started rolls back the transaction and deletes
  the keys this call created. The call grants every seat or none.

Expiry:
  The hold window is enforced lazily here (confirm checks the lock age) and
  actively by the expiry sweeper. Both cancel the booking and free its
  seats, so whichever runs first produces the same final state.

Lock-store cleanup after commit (confirm, cancel, expiry) is best effort:
  the relational store is authoritative and every key self-expires.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

import redis.asyncio as redis
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from seatkeeper.core.config import get_settings
from seatkeeper.core.exceptions import (
    BookingExpiredError,
    BookingNotFoundError,
    BookingStateError,
    EmptySeatSelectionError,
    InvalidSeatsError,
    ReservationError,
    SeatsUnavailableError,
    ShowNotFoundError,
)
from seatkeeper.core.logging import get_logger
from seatkeeper.core.metrics import lock_latency, record_reservation
from seatkeeper.db.base import as_utc, utcnow
from seatkeeper.models.booking import Booking, BookingStatus
from seatkeeper.models.show import SeatStatus, Show, ShowSeat
from seatkeeper.models.venue import Seat
from seatkeeper.services.seat_lock_store import acquire_seat_lock, release_seat_locks

logger = get_logger(__name__)
settings = get_settings()


def hold_window() -> timedelta:
    return timedelta(seconds=settings.HOLD_WINDOW_SECONDS)


@dataclass
class BookingSeats:
    """A booking together with the seats an operation acted on."""

    booking: Booking
    seats: list[Seat] = field(default_factory=list)


def _outcome(exc: BaseException) -> str:
    if isinstance(exc, SeatsUnavailableError):
        return "conflict"
    if isinstance(exc, BookingExpiredError):
        return "expired"
    if isinstance(exc, (ShowNotFoundError, BookingNotFoundError)):
        return "not_found"
    if isinstance(exc, BookingStateError):
        return "invalid_state"
    if isinstance(exc, ReservationError):
        return "invalid"
    return "error"


async def lock_seats(
    db: AsyncSession,
    lock_store: redis.Redis,
    user_id: int,
    show_id: int,
    seat_ids: Sequence[int],
) -> BookingSeats:
    """
    Hold every requested seat for the user under a new PENDING booking.

    Raises SeatsUnavailableError listing the seats that could not be
    secured, InvalidSeatsError for ids that are not seats of the show's
    venue, ShowNotFoundError for an unknown show.
    """
    # Deduplicated and in seat order: rows and seat keys are always taken
    # in the same order, so identical requests cannot starve each other
    seat_ids = sorted(set(seat_ids))
    if not seat_ids:
        raise EmptySeatSelectionError()

    started = time.perf_counter()
    acquired: list[int] = []
    try:
        show = await db.get(Show, show_id)
        if show is None:
            raise ShowNotFoundError(f"Show {show_id} not found")

        result = await db.execute(
            select(ShowSeat)
            .where(ShowSeat.show_id == show_id, ShowSeat.seat_id.in_(seat_ids))
            .order_by(ShowSeat.seat_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = result.scalars().all()

        unavailable = [row.seat_id for row in rows if row.status != SeatStatus.AVAILABLE]
        if unavailable:
            raise SeatsUnavailableError(unavailable)

        known = {row.seat_id for row in rows}
        missing = [seat_id for seat_id in seat_ids if seat_id not in known]
        if missing:
            valid = set(
                (
                    await db.execute(
                        select(Seat.id).where(Seat.id.in_(missing), Seat.venue_id == show.venue_id)
                    )
                ).scalars().all()
            )
            invalid = [seat_id for seat_id in missing if seat_id not in valid]
            if invalid:
                raise InvalidSeatsError(invalid)

        for seat_id in seat_ids:
            won = await acquire_seat_lock(
                lock_store, show_id, seat_id, str(user_id), settings.HOLD_WINDOW_SECONDS
            )
            if not won:
                raise SeatsUnavailableError([s for s in seat_ids if s not in acquired])
            acquired.append(seat_id)

        now = utcnow()
        booking = Booking(
            user_id=user_id,
            show_id=show_id,
            status=BookingStatus.PENDING,
            held_since=now,
            created_at=now,
            updated_at=now,
        )
        db.add(booking)
        await db.flush()

        await _upsert_locked_seats(db, show_id, booking.id, seat_ids, now)
        seats = await _seat_details(db, seat_ids)
        await db.commit()

    # BaseException: a cancelled request must not leave keys behind either
    except BaseException as exc:
        await db.rollback()
        if acquired:
            await release_seat_locks(lock_store, show_id, acquired)
        record_reservation("lock", _outcome(exc))
        if isinstance(exc, SeatsUnavailableError):
            logger.warning(
                "seat_lock_conflict",
                show_id=show_id,
                user_id=user_id,
                failed_seats=exc.failed_seats,
            )
        raise

    lock_latency.observe(time.perf_counter() - started)
    record_reservation("lock", "success")
    logger.info(
        "seats_locked",
        booking_id=booking.id,
        show_id=show_id,
        user_id=user_id,
        seats=seat_ids,
    )
    return BookingSeats(booking=booking, seats=seats)


async def confirm_booking(
    db: AsyncSession,
    lock_store: redis.Redis,
    booking_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> BookingSeats:
    """
    Turn a PENDING booking's LOCKED seats into BOOKED.

    If the hold window has lapsed the whole booking is cancelled, its seats
    are released, and BookingExpiredError is raised after the commit.
    """
    now = now or utcnow()
    expired_seats: Optional[list[int]] = None
    try:
        booking = await _get_owned_booking(db, booking_id, user_id)
        if booking.status != BookingStatus.PENDING:
            raise BookingStateError("Booking is not in pending status")

        result = await db.execute(
            select(ShowSeat)
            .where(ShowSeat.booking_id == booking.id, ShowSeat.status == SeatStatus.LOCKED)
            .order_by(ShowSeat.seat_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        held = result.scalars().all()
        if not held:
            raise BookingStateError("No locked seats found for this booking")

        seat_ids = [row.seat_id for row in held]
        cutoff = now - hold_window()
        lapsed = as_utc(booking.held_since) < cutoff or any(
            as_utc(row.locked_at) < cutoff for row in held
        )

        if lapsed:
            expired_seats = await release_booking_seats(db, booking)
            seats: list[Seat] = []
        else:
            await db.execute(
                update(ShowSeat)
                .where(ShowSeat.booking_id == booking.id, ShowSeat.status == SeatStatus.LOCKED)
                .values(status=SeatStatus.BOOKED, locked_at=None)
            )
            booking.status = BookingStatus.CONFIRMED
            seats = await _seat_details(db, seat_ids)
        await db.commit()

    except BaseException as exc:
        await db.rollback()
        record_reservation("confirm", _outcome(exc))
        raise

    await release_seat_locks(lock_store, booking.show_id, expired_seats or seat_ids)

    if expired_seats is not None:
        record_reservation("confirm", "expired")
        logger.info(
            "booking_expired_on_confirm",
            booking_id=booking.id,
            user_id=user_id,
            seats=expired_seats,
        )
        raise BookingExpiredError(expired_seats)

    record_reservation("confirm", "success")
    logger.info("booking_confirmed", booking_id=booking.id, user_id=user_id, seats=seat_ids)
    return BookingSeats(booking=booking, seats=seats)


async def cancel_booking(
    db: AsyncSession,
    lock_store: redis.Redis,
    booking_id: int,
    user_id: int,
) -> BookingSeats:
    """
    Release every seat of a PENDING or CONFIRMED booking.
    Cancelling an already-cancelled booking is rejected, not ignored.
    """
    try:
        booking = await _get_owned_booking(db, booking_id, user_id)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingStateError("Booking is already cancelled")

        released = await release_booking_seats(db, booking)
        seats = await _seat_details(db, released)
        await db.commit()

    except BaseException as exc:
        await db.rollback()
        record_reservation("cancel", _outcome(exc))
        raise

    # No-op for seats that were BOOKED and no longer had a key
    await release_seat_locks(lock_store, booking.show_id, released)

    record_reservation("cancel", "success")
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        user_id=user_id,
        seats_released=released,
    )
    return BookingSeats(booking=booking, seats=seats)


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[BookingSeats]:
    """
    All bookings of a user, newest first, with the seats each still holds.

    Each booking's show is loaded with its event and venue for display.
    """
    result = await db.execute(
        select(Booking)
        .options(
            selectinload(Booking.show).selectinload(Show.event),
            selectinload(Booking.show).selectinload(Show.venue),
        )
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    bookings = list(result.scalars().all())
    if not bookings:
        return []

    seat_rows = await db.execute(
        select(ShowSeat.booking_id, Seat)
        .join(Seat, Seat.id == ShowSeat.seat_id)
        .where(ShowSeat.booking_id.in_([b.id for b in bookings]))
        .order_by(Seat.id)
    )
    seats_by_booking: dict[int, list[Seat]] = {}
    for owner_id, seat in seat_rows.all():
        seats_by_booking.setdefault(owner_id, []).append(seat)

    return [BookingSeats(booking=b, seats=seats_by_booking.get(b.id, [])) for b in bookings]


async def release_booking_seats(db: AsyncSession, booking: Booking) -> list[int]:
    """
    Return all of a booking's seats to AVAILABLE and cancel it.

    Runs inside the caller's transaction; the caller commits and then
    deletes the returned seats' lock keys.
    """
    result = await db.execute(
        select(ShowSeat.seat_id)
        .where(ShowSeat.booking_id == booking.id)
        .order_by(ShowSeat.seat_id)
        .with_for_update()
    )
    seat_ids = list(result.scalars().all())

    await db.execute(
        update(ShowSeat)
        .where(ShowSeat.booking_id == booking.id)
        .values(status=SeatStatus.AVAILABLE, booking_id=None, locked_at=None)
    )
    booking.status = BookingStatus.CANCELLED
    await db.flush()
    return seat_ids


async def _get_owned_booking(db: AsyncSession, booking_id: int, user_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id, Booking.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFoundError()
    return booking


async def _upsert_locked_seats(
    db: AsyncSession,
    show_id: int,
    booking_id: int,
    seat_ids: Sequence[int],
    locked_at: datetime,
) -> None:
    """INSERT ... ON CONFLICT (show_id, seat_id) DO UPDATE in one statement."""
    dialect = db.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

    stmt = insert(ShowSeat).values(
        [
            {
                "show_id": show_id,
                "seat_id": seat_id,
                "status": SeatStatus.LOCKED,
                "booking_id": booking_id,
                "locked_at": locked_at,
            }
            for seat_id in seat_ids
        ]
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ShowSeat.show_id, ShowSeat.seat_id],
        set_={
            "status": stmt.excluded.status,
            "booking_id": stmt.excluded.booking_id,
            "locked_at": stmt.excluded.locked_at,
        },
    )
    await db.execute(stmt)


async def _seat_details(db: AsyncSession, seat_ids: Sequence[int]) -> list[Seat]:
    if not seat_ids:
        return []
    result = await db.execute(select(Seat).where(Seat.id.in_(seat_ids)).order_by(Seat.id))
    return list(result.scalars().all())
