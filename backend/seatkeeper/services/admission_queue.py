"""
Deferred admission queue stored in Redis.

Layout:
  admission:job:{id}        hash with the job payload and attempt count
  admission:queue:delayed   sorted set, score = when the job may run
  admission:queue:ready     sorted set, score = priority then enqueue time

Jobs move delayed -> ready in a Lua script, and leave ready through ZPOPMIN,
so any number of worker processes can share one queue without running a
job twice. A job lost between claim and completion only means its client
keeps being deferred until the queue marker lapses and they are queued
again.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis

from seatkeeper.core.config import get_settings
from seatkeeper.core.logging import get_logger
from seatkeeper.infrastructure import keys
from seatkeeper.infrastructure.redis_client import load_script

logger = get_logger(__name__)
settings = get_settings()

JOB_TTL_SECONDS = 3600
PROMOTE_BATCH = 100


@dataclass
class AdmissionJob:
    id: str
    client_id: str
    token: str
    priority: int
    enqueued_at: float
    attempts: int = 0

    def to_mapping(self) -> dict:
        return {
            "client_id": self.client_id,
            "token": self.token,
            "priority": self.priority,
            "enqueued_at": repr(self.enqueued_at),
            "attempts": self.attempts,
        }

    @classmethod
    def from_mapping(cls, job_id: str, data: dict) -> "AdmissionJob":
        return cls(
            id=job_id,
            client_id=data["client_id"],
            token=data["token"],
            priority=int(data["priority"]),
            enqueued_at=float(data["enqueued_at"]),
            attempts=int(data.get("attempts", 0)),
        )


class DeferredAdmissionQueue:
    def __init__(
        self,
        lock_store: redis.Redis,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = lock_store
        self.max_attempts = max_attempts or settings.ADMISSION_JOB_ATTEMPTS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.ADMISSION_JOB_BACKOFF_SECONDS
        )
        self.clock = clock
        self._promote = self.redis.register_script(load_script("promote_due_jobs"))

    async def enqueue(self, client_id: str, token: str, delay: float, priority: int) -> AdmissionJob:
        job_id = str(await self.redis.incr(keys.ADMISSION_JOB_SEQ))
        now = self.clock()
        job = AdmissionJob(
            id=job_id,
            client_id=client_id,
            token=token,
            priority=priority,
            enqueued_at=now,
        )
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.admission_job(job_id), mapping=job.to_mapping())
            pipe.expire(keys.admission_job(job_id), JOB_TTL_SECONDS)
            pipe.zadd(keys.ADMISSION_DELAYED, {job_id: now + delay})
            await pipe.execute()

        logger.info(
            "admission_job_enqueued",
            job_id=job_id,
            client_id=client_id,
            delay=round(delay, 2),
            priority=priority,
        )
        return job

    async def promote_due(self) -> int:
        """Make every job whose delay has passed claimable."""
        return int(
            await self._promote(
                keys=[keys.ADMISSION_DELAYED, keys.ADMISSION_READY],
                args=[repr(self.clock()), keys.ADMISSION_JOB_PREFIX, PROMOTE_BATCH],
            )
        )

    async def claim(self) -> Optional[AdmissionJob]:
        """Pop the highest-priority ready job, or None when nothing is ready."""
        while True:
            popped = await self.redis.zpopmin(keys.ADMISSION_READY)
            if not popped:
                return None
            job_id = popped[0][0]
            data = await self.redis.hgetall(keys.admission_job(job_id))
            if data:
                return AdmissionJob.from_mapping(job_id, data)
            # Payload expired while queued; nothing left to run
            logger.warning("admission_job_missing", job_id=job_id)

    async def complete(self, job: AdmissionJob) -> None:
        await self.redis.delete(keys.admission_job(job.id))

    async def retry(self, job: AdmissionJob) -> bool:
        """
        Schedule another attempt with exponential backoff.
        Returns False and drops the job once its attempts are used up.
        """
        job.attempts += 1
        if job.attempts >= self.max_attempts:
            await self.complete(job)
            return False

        delay = self.backoff_seconds * (2 ** (job.attempts - 1))
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.admission_job(job.id), "attempts", job.attempts)
            pipe.zadd(keys.ADMISSION_DELAYED, {job.id: self.clock() + delay})
            await pipe.execute()
        return True

    async def depth(self) -> int:
        """Jobs waiting, delayed or ready."""
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.zcard(keys.ADMISSION_DELAYED)
            pipe.zcard(keys.ADMISSION_READY)
            delayed, ready = await pipe.execute()
        return int(delayed) + int(ready)

    async def estimate_wait_seconds(self) -> int:
        """
        Rough time until a newly deferred client is admitted: the mean
        enqueue delay plus one mean processing time per full wave of
        workers ahead of it.
        """
        pending = await self.depth()
        concurrency = max(settings.ADMISSION_WORKER_CONCURRENCY, 1)
        waves = pending // concurrency + 1
        mean_delay = (settings.QUEUE_DELAY_MIN_SECONDS + settings.QUEUE_DELAY_MAX_SECONDS) / 2
        mean_processing = (
            settings.ADMISSION_PROCESSING_MIN_SECONDS + settings.ADMISSION_PROCESSING_MAX_SECONDS
        ) / 2
        return int(round(mean_delay + waves * mean_processing))
