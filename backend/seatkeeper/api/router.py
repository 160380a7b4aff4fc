"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter, Depends

from seatkeeper.api.admission import admission_gate, rate_limit_gate
from seatkeeper.api.routes import bookings, shows
from seatkeeper.core.config import get_settings

settings = get_settings()

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(
    shows.router,
    dependencies=[Depends(rate_limit_gate(settings.RATE_LIMIT_PER_MINUTE)), Depends(admission_gate)],
)
api_router.include_router(
    bookings.router,
    dependencies=[Depends(rate_limit_gate(settings.BOOKING_RATE_LIMIT_PER_MINUTE)), Depends(admission_gate)],
)
