"""
Demand-based admission control for the reservation path.
Implements AdmissionStrategy interface using Redis.

Per request:
  1. Client already queued (waiting_room:{client} holds a token)?
       - can_proceed:{token} present -> consume it, admit
       - otherwise                    -> defer again, do not re-queue
  2. Count the request against the show's demand window (or the
     system-wide window when no show is named), in one Lua call:
       - counter already over threshold -> not incremented; queue the
         client with a random delay and priority, defer
       - otherwise                      -> incremented, admit

All state lives in Redis with TTLs, so every service instance sees the
same counters and queue.

Circuit Breaker Pattern:
  On Redis failure, the system "fails open" (admits the request).
  The reservation engine still prevents overselling on its own;
  admission control only paces traffic.
"""

import random
import time
import uuid
from typing import Optional

import redis.asyncio as redis

from seatkeeper.core.config import get_settings
from seatkeeper.core.logging import get_logger
from seatkeeper.core.metrics import admission_latency, record_admission, redis_connection_errors
from seatkeeper.infrastructure import keys
from seatkeeper.infrastructure.redis_client import load_script
from seatkeeper.services.admission_queue import DeferredAdmissionQueue
from seatkeeper.services.interfaces.admission import AdmissionDecision, AdmissionStrategy

logger = get_logger(__name__)
settings = get_settings()


class DemandAdmission(AdmissionStrategy):
    """
    Redis-based admission control with a deferred admission queue.

    Use when:
    - Flash sales / on-sale moments for a single show
    - Need to keep the reservation engine's row locks uncontended
    """

    def __init__(
        self,
        lock_store: redis.Redis,
        queue: Optional[DeferredAdmissionQueue] = None,
        rng: Optional[random.Random] = None,
    ):
        self.redis = lock_store
        self.queue = queue or DeferredAdmissionQueue(lock_store)
        self.rng = rng or random.Random()
        self.script = self.redis.register_script(load_script("demand_counter"))

    async def check(self, client_id: str, show_id: Optional[int] = None) -> AdmissionDecision:
        started = time.perf_counter()
        try:
            decision = await self._decide(client_id, show_id)
        except Exception as e:
            # Circuit breaker: On Redis failure, fail open
            redis_connection_errors.inc()
            logger.error("admission_check_failed", client_id=client_id, show_id=show_id, error=str(e))
            decision = AdmissionDecision(admitted=True, reason="fail_open")

        admission_latency.observe(time.perf_counter() - started)
        record_admission(decision.reason)
        return decision

    async def _decide(self, client_id: str, show_id: Optional[int]) -> AdmissionDecision:
        marker_key = keys.queue_marker(client_id)

        token = await self.redis.get(marker_key)
        if token:
            return await self._redeem(client_id, marker_key, token)

        if show_id is not None:
            counter = keys.show_demand(show_id)
            threshold = settings.SHOW_DEMAND_THRESHOLD
            window = settings.SHOW_DEMAND_WINDOW_SECONDS
        else:
            counter = keys.SYSTEM_LOAD
            threshold = settings.SYSTEM_LOAD_THRESHOLD
            window = settings.SYSTEM_LOAD_WINDOW_SECONDS

        count = int(await self.script(keys=[counter], args=[threshold, window]))
        if count >= 0:
            return AdmissionDecision(admitted=True, reason="admitted")

        logger.info("high_demand_detected", counter=counter, threshold=threshold, client_id=client_id)
        return await self._defer(client_id, marker_key)

    async def _redeem(self, client_id: str, marker_key: str, token: str) -> AdmissionDecision:
        # DEL succeeds for exactly one concurrent request holding the token
        if await self.redis.delete(keys.admitted_token(token)):
            await self.redis.delete(marker_key)
            logger.info("admission_token_redeemed", client_id=client_id)
            return AdmissionDecision(admitted=True, reason="token", token=token)

        return AdmissionDecision(
            admitted=False,
            reason="waiting",
            estimated_wait_seconds=await self.queue.estimate_wait_seconds(),
            token=token,
        )

    async def _defer(self, client_id: str, marker_key: str) -> AdmissionDecision:
        token = uuid.uuid4().hex
        placed = await self.redis.set(
            marker_key, token, nx=True, ex=settings.QUEUE_MARKER_TTL_SECONDS
        )
        if not placed:
            # A concurrent request from the same client queued it first
            return AdmissionDecision(
                admitted=False,
                reason="waiting",
                estimated_wait_seconds=await self.queue.estimate_wait_seconds(),
                token=await self.redis.get(marker_key),
            )

        delay = self.rng.uniform(settings.QUEUE_DELAY_MIN_SECONDS, settings.QUEUE_DELAY_MAX_SECONDS)
        priority = self.rng.randrange(settings.QUEUE_MAX_PRIORITY)
        await self.queue.enqueue(client_id, token, delay, priority)

        return AdmissionDecision(
            admitted=False,
            reason="queued",
            estimated_wait_seconds=await self.queue.estimate_wait_seconds(),
            token=token,
        )
