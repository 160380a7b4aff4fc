"""
Expiry sweeper: reclaims abandoned PENDING bookings every interval.

At most one sweep runs at a time across every service instance: a sweep
starts only after winning `sweeper:lock` (SET NX EX), and the lock is
released with an owner check so a slow sweep never frees someone else's.
"""

import asyncio
import uuid
from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatkeeper.core.config import get_settings
from seatkeeper.core.metrics import record_sweep
from seatkeeper.infrastructure import keys
from seatkeeper.infrastructure.redis_client import load_script
from seatkeeper.services.sweeper_service import SweepResult, sweep_expired_bookings
from seatkeeper.workers.base import BackgroundWorker

settings = get_settings()


class ExpirySweeper(BackgroundWorker):
    name = "expiry_sweeper"

    def __init__(
        self,
        session_factory: async_sessionmaker,
        lock_store: redis.Redis,
        interval_seconds: Optional[float] = None,
        lock_ttl_seconds: Optional[int] = None,
    ):
        super().__init__(interval_seconds or settings.SWEEP_INTERVAL_SECONDS)
        self.session_factory = session_factory
        self.redis = lock_store
        self.lock_ttl_seconds = lock_ttl_seconds or settings.SWEEP_LOCK_TTL_SECONDS
        self.instance_id = uuid.uuid4().hex
        self._in_process = asyncio.Lock()
        self._release = self.redis.register_script(load_script("release_if_owner"))

    async def tick(self) -> None:
        await self.run_once()

    async def run_once(self) -> Optional[SweepResult]:
        """One sweep, or None when another sweep holds the lock."""
        async with self._in_process:
            won = await self.redis.set(
                keys.SWEEPER_LOCK, self.instance_id, nx=True, ex=self.lock_ttl_seconds
            )
            if not won:
                record_sweep("skipped")
                self.logger.info("sweep_skipped", reason="held_elsewhere")
                return None

            try:
                result = await sweep_expired_bookings(self.session_factory, self.redis)
            except Exception:
                record_sweep("error")
                raise
            finally:
                await self._release(keys=[keys.SWEEPER_LOCK], args=[self.instance_id])

        record_sweep("completed", reclaimed=result.reclaimed, failed=result.failed)
        return result
