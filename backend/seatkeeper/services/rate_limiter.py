"""
Per-client request rate limit.

One fixed-window counter per client (rate_limit:{client}), shared by every
API route. The limit itself depends on the route: booking operations get a
tighter budget than browsing. Every request increments the counter, so a
client that keeps retrying while limited stays limited until the window
expires.

Like admission control, this only paces traffic; on Redis failure it
fails open.
"""

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

from seatkeeper.core.config import get_settings
from seatkeeper.core.logging import get_logger
from seatkeeper.core.metrics import record_rate_limit, redis_connection_errors
from seatkeeper.infrastructure import keys
from seatkeeper.infrastructure.redis_client import load_script

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    retry_after: int = 0


class ClientRateLimiter:
    def __init__(self, lock_store: redis.Redis, window_seconds: Optional[int] = None):
        self.redis = lock_store
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.script = self.redis.register_script(load_script("rate_counter"))

    async def hit(self, client_id: str, limit: int) -> RateLimitDecision:
        try:
            count = int(await self.script(keys=[keys.rate_limit(client_id)], args=[self.window_seconds]))
        except Exception as e:
            redis_connection_errors.inc()
            logger.error("rate_limit_check_failed", client_id=client_id, error=str(e))
            record_rate_limit("fail_open")
            return RateLimitDecision(allowed=True, count=0, limit=limit)

        if count > limit:
            logger.warning("rate_limit_exceeded", client_id=client_id, count=count, limit=limit)
            record_rate_limit("limited")
            return RateLimitDecision(
                allowed=False, count=count, limit=limit, retry_after=self.window_seconds
            )

        record_rate_limit("allowed")
        return RateLimitDecision(allowed=True, count=count, limit=limit)
