"""
Show browsing endpoints. They feed the reservation path, so they sit
behind the admission gate.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from seatkeeper.db.session import get_db
from seatkeeper.schemas.show import SeatMapResponse, SeatStatusEntry, ShowResponse
from seatkeeper.services.catalog_service import get_seat_counts, get_seat_map, get_show

router = APIRouter(prefix="/shows", tags=["Shows"])


@router.get("/{show_id}", response_model=ShowResponse)
async def get_show_endpoint(show_id: int, db: AsyncSession = Depends(get_db)):
    """Get a show with live seat counts."""
    show = await get_show(db, show_id)
    available, total = await get_seat_counts(db, show_id)
    return ShowResponse(
        id=show.id,
        event_id=show.event_id,
        venue_id=show.venue_id,
        start_time=show.start_time,
        end_time=show.end_time,
        price=show.price,
        available_seats=available,
        total_seats=total,
    )


@router.get("/{show_id}/seats", response_model=SeatMapResponse)
async def get_seat_map_endpoint(show_id: int, db: AsyncSession = Depends(get_db)):
    """Seat-by-seat status for a show. Not cached: it must reflect live locks."""
    seat_map = await get_seat_map(db, show_id)
    return SeatMapResponse(
        show_id=show_id,
        seats=[
            SeatStatusEntry(
                seat_id=seat.id,
                seat_row=seat.seat_row,
                seat_number=seat.seat_number,
                status=seat_status,
            )
            for seat, seat_status in seat_map
        ],
    )
