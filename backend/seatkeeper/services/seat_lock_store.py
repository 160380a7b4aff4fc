"""
Distributed seat locks in Redis.

A key per (show, seat) created with SET NX EX is the cross-process
tie-breaker for lock attempts that pass the row-lock check at the same
time. The relational store stays authoritative: these keys may be deleted
redundantly at any point, and a key that outlives its seat's LOCKED state
only blocks that seat until its TTL runs out.
"""

from typing import Iterable

import redis.asyncio as redis

from seatkeeper.core.logging import get_logger
from seatkeeper.core.metrics import lock_store_cleanup_errors
from seatkeeper.infrastructure import keys

logger = get_logger(__name__)


async def acquire_seat_lock(
    lock_store: redis.Redis,
    show_id: int,
    seat_id: int,
    holder: str,
    ttl_seconds: int,
) -> bool:
    """Create the seat's lock key if absent. True when this caller won."""
    result = await lock_store.set(keys.seat_lock(show_id, seat_id), holder, nx=True, ex=ttl_seconds)
    return bool(result)


async def release_seat_locks(lock_store: redis.Redis, show_id: int, seat_ids: Iterable[int]) -> int:
    """
    Delete the lock keys for the given seats in one round trip.

    Best effort: a failure is logged and counted, never raised, because
    every key expires on its own anyway.
    """
    lock_keys = [keys.seat_lock(show_id, seat_id) for seat_id in seat_ids]
    if not lock_keys:
        return 0
    try:
        return await lock_store.delete(*lock_keys)
    except Exception as e:
        lock_store_cleanup_errors.inc()
        logger.error(
            "seat_lock_release_failed",
            show_id=show_id,
            keys=len(lock_keys),
            error=str(e),
        )
        return 0
