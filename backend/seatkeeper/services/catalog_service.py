"""
Catalog reads the reservation path depends on, plus show creation.

Creating a show is the one catalog write that matters here: it lays down
one AVAILABLE show_seats row per venue seat, which is what seat locks
later operate on.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from seatkeeper.core.exceptions import ShowNotFoundError
from seatkeeper.models.show import Event, Show, ShowSeat, SeatStatus
from seatkeeper.models.venue import Seat, Venue
from seatkeeper.core.logging import get_logger

logger = get_logger(__name__)


async def create_show(
    db: AsyncSession,
    event_id: int,
    venue_id: int,
    start_time: datetime,
    end_time: datetime,
    price: Decimal,
) -> Show:
    """Create a show and its full seat inventory, all AVAILABLE."""
    if end_time <= start_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Show must end after it starts",
        )
    if await db.get(Event, event_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Event {event_id} not found")
    if await db.get(Venue, venue_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Venue {venue_id} not found")

    show = Show(
        event_id=event_id,
        venue_id=venue_id,
        start_time=start_time,
        end_time=end_time,
        price=price,
    )
    db.add(show)
    await db.flush()

    seat_ids = (
        await db.execute(select(Seat.id).where(Seat.venue_id == venue_id).order_by(Seat.id))
    ).scalars().all()
    db.add_all(
        ShowSeat(show_id=show.id, seat_id=seat_id, status=SeatStatus.AVAILABLE)
        for seat_id in seat_ids
    )
    await db.flush()

    logger.info("show_created", show_id=show.id, venue_id=venue_id, seats=len(seat_ids))
    return show


async def get_show(db: AsyncSession, show_id: int) -> Show:
    """Get a single show by ID."""
    show = await db.get(Show, show_id)
    if show is None:
        raise ShowNotFoundError(f"Show {show_id} not found")
    return show


async def get_seat_counts(db: AsyncSession, show_id: int) -> tuple[int, int]:
    """(available, total) seats for a show."""
    result = await db.execute(
        select(
            func.count().filter(ShowSeat.status == SeatStatus.AVAILABLE),
            func.count(),
        ).where(ShowSeat.show_id == show_id)
    )
    available, total = result.one()
    return available or 0, total or 0


async def get_seat_map(db: AsyncSession, show_id: int) -> list[tuple[Seat, str]]:
    """
    Seat id -> status for a show, ordered by row and number.
    Read-only; never takes row locks.
    """
    await get_show(db, show_id)
    result = await db.execute(
        select(Seat, ShowSeat.status)
        .join(ShowSeat, ShowSeat.seat_id == Seat.id)
        .where(ShowSeat.show_id == show_id)
        .order_by(Seat.seat_row, Seat.seat_number)
    )
    return [(seat, seat_status) for seat, seat_status in result.all()]
