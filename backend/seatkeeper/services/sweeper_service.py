"""
Reclaim bookings whose hold window lapsed without a confirm or cancel.

Each booking is reclaimed in its own transaction so one bad row cannot
stall the rest of the sweep; the status is re-read under FOR UPDATE since a
confirm may have won the race after the scan.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatkeeper.core.logging import get_logger
from seatkeeper.db.base import utcnow
from seatkeeper.models.booking import Booking, BookingStatus
from seatkeeper.services.booking_service import hold_window, release_booking_seats
from seatkeeper.services.seat_lock_store import release_seat_locks

logger = get_logger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    reclaimed: int = 0
    failed: int = 0


async def find_expired_bookings(db: AsyncSession, now: datetime) -> list[int]:
    result = await db.execute(
        select(Booking.id)
        .where(Booking.status == BookingStatus.PENDING, Booking.held_since < now - hold_window())
        .order_by(Booking.held_since)
    )
    return list(result.scalars().all())


async def reclaim_booking(db: AsyncSession, booking_id: int) -> Optional[tuple[int, list[int]]]:
    """
    Cancel one expired booking and free its seats, committing.
    Returns (show_id, released seat ids), or None if it is no longer PENDING.
    """
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None or booking.status != BookingStatus.PENDING:
        await db.rollback()
        return None

    released = await release_booking_seats(db, booking)
    await db.commit()
    return booking.show_id, released


async def sweep_expired_bookings(
    session_factory: async_sessionmaker,
    lock_store: redis.Redis,
    now: Optional[datetime] = None,
) -> SweepResult:
    now = now or utcnow()
    outcome = SweepResult()

    async with session_factory() as db:
        expired = await find_expired_bookings(db, now)
    outcome.scanned = len(expired)

    for booking_id in expired:
        try:
            async with session_factory() as db:
                reclaimed = await reclaim_booking(db, booking_id)
        except Exception as e:
            outcome.failed += 1
            logger.error("sweep_booking_failed", booking_id=booking_id, error=str(e))
            continue

        if reclaimed is None:
            continue
        show_id, seat_ids = reclaimed
        # Outside the transaction; keys expire on their own if this fails
        await release_seat_locks(lock_store, show_id, seat_ids)
        outcome.reclaimed += 1
        logger.info("expired_booking_reclaimed", booking_id=booking_id, show_id=show_id, seats=seat_ids)

    logger.info(
        "sweep_completed",
        scanned=outcome.scanned,
        reclaimed=outcome.reclaimed,
        failed=outcome.failed,
    )
    return outcome
