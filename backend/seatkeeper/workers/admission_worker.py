"""
Deferred admission worker.

Drains the deferred admission queue with at most N jobs in flight. A job
waits a simulated processing delay, then hands its client an admitted
token if the client is still queued under the same token. Failed jobs are
retried with exponential backoff a fixed number of times, then dropped;
the client simply keeps being deferred until their queue marker lapses.
"""

import asyncio
import random
from typing import Optional

import redis.asyncio as redis

from seatkeeper.core.config import get_settings
from seatkeeper.core.metrics import admission_jobs_in_flight, record_admission_job
from seatkeeper.infrastructure import keys
from seatkeeper.services.admission_queue import AdmissionJob, DeferredAdmissionQueue
from seatkeeper.workers.base import BackgroundWorker

settings = get_settings()


class DeferredAdmissionWorker(BackgroundWorker):
    name = "admission_worker"

    def __init__(
        self,
        lock_store: redis.Redis,
        queue: Optional[DeferredAdmissionQueue] = None,
        concurrency: Optional[int] = None,
        poll_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(poll_seconds or settings.ADMISSION_WORKER_POLL_SECONDS)
        self.redis = lock_store
        self.queue = queue or DeferredAdmissionQueue(lock_store)
        self.concurrency = concurrency or settings.ADMISSION_WORKER_CONCURRENCY
        self.rng = rng or random.Random()
        self._slots = asyncio.Semaphore(self.concurrency)
        self._in_flight: set[asyncio.Task] = set()

    async def tick(self) -> None:
        await self.drain_once()

    async def drain_once(self) -> int:
        """Promote due jobs and start as many as there are free slots."""
        await self.queue.promote_due()
        started = 0
        # Only this coroutine acquires slots, so checking then acquiring is safe
        while not self._slots.locked():
            job = await self.queue.claim()
            if job is None:
                break
            await self._slots.acquire()
            task = asyncio.create_task(self._run_job(job), name=f"admission-job-{job.id}")
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            started += 1
        return started

    async def wait_idle(self) -> None:
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def on_stop(self) -> None:
        for task in list(self._in_flight):
            task.cancel()
        await self.wait_idle()

    async def process(self, job: AdmissionJob) -> bool:
        """
        Simulated admission work. True when the client was handed a token,
        False when they had left the queue in the meantime.
        """
        await asyncio.sleep(
            self.rng.uniform(
                settings.ADMISSION_PROCESSING_MIN_SECONDS,
                settings.ADMISSION_PROCESSING_MAX_SECONDS,
            )
        )
        current = await self.redis.get(keys.queue_marker(job.client_id))
        if current != job.token:
            return False
        await self.redis.set(
            keys.admitted_token(job.token), "true", ex=settings.ADMITTED_TOKEN_TTL_SECONDS
        )
        return True

    async def _run_job(self, job: AdmissionJob) -> None:
        admission_jobs_in_flight.inc()
        try:
            promoted = await self.process(job)
            await self.queue.complete(job)
            record_admission_job("promoted" if promoted else "lapsed")
            self.logger.info(
                "admission_job_completed",
                job_id=job.id,
                client_id=job.client_id,
                promoted=promoted,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_failure(job, e)
        finally:
            admission_jobs_in_flight.dec()
            self._slots.release()

    async def _handle_failure(self, job: AdmissionJob, error: Exception) -> None:
        try:
            retried = await self.queue.retry(job)
        except Exception as e:
            self.logger.error("admission_job_retry_failed", job_id=job.id, error=str(e))
            return

        record_admission_job("retried" if retried else "exhausted")
        log = self.logger.warning if retried else self.logger.error
        log(
            "admission_job_failed",
            job_id=job.id,
            client_id=job.client_id,
            attempts=job.attempts,
            will_retry=retried,
            error=str(error),
        )
