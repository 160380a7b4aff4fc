"""
Admission and rate limit gates for reservation-path routers.

Attached as router dependencies to bookings and shows only, so health,
metrics and other routes never pass through them. The rate limit runs
first: a client over its budget is turned away before it is counted
against a show.
"""

from typing import Optional

from fastapi import Depends, Request

from seatkeeper.core.exceptions import AdmissionDeferred, RateLimited
from seatkeeper.services.interfaces.admission import AdmissionStrategy
from seatkeeper.services.rate_limiter import ClientRateLimiter
from seatkeeper.services.strategy_factory import get_admission, get_rate_limiter

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client:
        return request.client.host
    return "unknown"


def _as_show_id(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def target_show_id(request: Request) -> Optional[int]:
    """show_id from the path, then the query string, then a JSON body."""
    for source in (request.path_params, request.query_params):
        if "show_id" in source:
            return _as_show_id(source["show_id"])

    if request.method in _BODY_METHODS and "json" in request.headers.get("content-type", ""):
        try:
            body = await request.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return _as_show_id(body.get("show_id"))
    return None


async def admission_gate(
    request: Request,
    strategy: AdmissionStrategy = Depends(get_admission),
) -> None:
    decision = await strategy.check(client_identity(request), await target_show_id(request))
    if not decision.admitted:
        raise AdmissionDeferred(
            estimated_wait_seconds=decision.estimated_wait_seconds,
            token=decision.token,
            requeued=decision.reason == "queued",
        )


def rate_limit_gate(limit: int):
    """Build a dependency that allows `limit` requests per client per window."""

    async def gate(
        request: Request,
        limiter: Optional[ClientRateLimiter] = Depends(get_rate_limiter),
    ) -> None:
        if limiter is None:
            return
        decision = await limiter.hit(client_identity(request), limit)
        if not decision.allowed:
            raise RateLimited(retry_after=decision.retry_after)

    return gate
