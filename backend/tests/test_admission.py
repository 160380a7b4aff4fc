"""
Admission control tests: demand thresholds, the deferred queue, the worker
that promotes queued clients, token redemption, and the per-client rate
limit.
"""

import asyncio
import random

import pytest

from seatkeeper.core.config import get_settings
from seatkeeper.infrastructure import keys
from seatkeeper.services.admission_queue import DeferredAdmissionQueue
from seatkeeper.services.admission_service import DemandAdmission
from seatkeeper.services.rate_limiter import ClientRateLimiter
from seatkeeper.workers.admission_worker import DeferredAdmissionWorker

settings = get_settings()


class Clock:
    def __init__(self, now: float = 1_760_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def queue(lock_store, clock):
    return DeferredAdmissionQueue(lock_store, clock=clock)


@pytest.fixture
def admission(lock_store, queue):
    return DemandAdmission(lock_store, queue=queue, rng=random.Random(7))


# ---------------------------------------------------------------------------
# Demand thresholds
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_under_threshold_is_admitted_and_counted(admission, lock_store):
    decision = await admission.check("10.0.0.1", show_id=5)

    assert decision.admitted
    assert decision.reason == "admitted"
    assert await lock_store.get(keys.show_demand(5)) == "1"
    assert 0 < await lock_store.ttl(keys.show_demand(5)) <= settings.SHOW_DEMAND_WINDOW_SECONDS


@pytest.mark.asyncio
async def test_window_ttl_set_only_on_first_request(admission, lock_store):
    await admission.check("10.0.0.1", show_id=5)
    await lock_store.expire(keys.show_demand(5), 10)
    await admission.check("10.0.0.2", show_id=5)

    assert await lock_store.get(keys.show_demand(5)) == "2"
    assert await lock_store.ttl(keys.show_demand(5)) <= 10


@pytest.mark.asyncio
async def test_show_over_threshold_defers_and_queues(admission, lock_store, queue):
    await lock_store.set(keys.show_demand(5), settings.SHOW_DEMAND_THRESHOLD + 1, ex=300)

    decision = await admission.check("10.0.0.1", show_id=5)

    assert not decision.admitted
    assert decision.reason == "queued"
    assert decision.token
    assert decision.estimated_wait_seconds > 0
    # Not counted while over threshold
    assert int(await lock_store.get(keys.show_demand(5))) == settings.SHOW_DEMAND_THRESHOLD + 1
    assert await lock_store.get(keys.queue_marker("10.0.0.1")) == decision.token
    assert 0 < await lock_store.ttl(keys.queue_marker("10.0.0.1")) <= settings.QUEUE_MARKER_TTL_SECONDS
    assert await queue.depth() == 1


@pytest.mark.asyncio
async def test_request_at_threshold_still_admitted(admission, lock_store):
    await lock_store.set(keys.show_demand(5), settings.SHOW_DEMAND_THRESHOLD, ex=300)

    decision = await admission.check("10.0.0.1", show_id=5)

    assert decision.admitted
    assert int(await lock_store.get(keys.show_demand(5))) == settings.SHOW_DEMAND_THRESHOLD + 1


@pytest.mark.asyncio
async def test_busy_show_does_not_defer_other_shows(admission, lock_store):
    await lock_store.set(keys.show_demand(5), settings.SHOW_DEMAND_THRESHOLD + 1, ex=300)

    decision = await admission.check("10.0.0.1", show_id=6)

    assert decision.admitted
    assert await lock_store.get(keys.show_demand(6)) == "1"


@pytest.mark.asyncio
async def test_requests_without_show_use_system_counter(admission, lock_store):
    decision = await admission.check("10.0.0.1")
    assert decision.admitted
    assert await lock_store.get(keys.SYSTEM_LOAD) == "1"

    await lock_store.set(keys.SYSTEM_LOAD, settings.SYSTEM_LOAD_THRESHOLD + 1, ex=120)
    decision = await admission.check("10.0.0.2")
    assert not decision.admitted
    assert decision.reason == "queued"


@pytest.mark.asyncio
async def test_queued_client_is_not_requeued(admission, lock_store, queue):
    await lock_store.set(keys.show_demand(5), settings.SHOW_DEMAND_THRESHOLD + 1, ex=300)
    first = await admission.check("10.0.0.1", show_id=5)

    # Even a quiet show keeps deferring a client who is already queued
    second = await admission.check("10.0.0.1", show_id=6)

    assert not second.admitted
    assert second.reason == "waiting"
    assert second.token == first.token
    assert await queue.depth() == 1
    assert await lock_store.exists(keys.show_demand(6)) == 0


@pytest.mark.asyncio
async def test_admitted_token_is_redeemed_once(admission, lock_store):
    await lock_store.set(keys.show_demand(5), settings.SHOW_DEMAND_THRESHOLD + 1, ex=300)
    deferred = await admission.check("10.0.0.1", show_id=5)
    await lock_store.set(keys.admitted_token(deferred.token), "true", ex=300)

    decision = await admission.check("10.0.0.1", show_id=5)

    assert decision.admitted
    assert decision.reason == "token"
    assert await lock_store.exists(keys.admitted_token(deferred.token)) == 0
    assert await lock_store.exists(keys.queue_marker("10.0.0.1")) == 0

    # Token spent and show still busy: queued afresh
    again = await admission.check("10.0.0.1", show_id=5)
    assert not again.admitted
    assert again.reason == "queued"
    assert again.token != deferred.token


@pytest.mark.asyncio
async def test_lock_store_failure_fails_open(lock_store, queue):
    admission = DemandAdmission(lock_store, queue=queue)

    async def broken(*args, **kwargs):
        raise ConnectionError("redis down")

    admission.redis.get = broken

    decision = await admission.check("10.0.0.1", show_id=5)

    assert decision.admitted
    assert decision.reason == "fail_open"


# ---------------------------------------------------------------------------
# Per-client rate limit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rate_limit_allows_up_to_limit(lock_store):
    limiter = ClientRateLimiter(lock_store, window_seconds=60)

    for expected in range(1, 4):
        decision = await limiter.hit("10.0.0.1", limit=3)
        assert decision.allowed
        assert decision.count == expected

    decision = await limiter.hit("10.0.0.1", limit=3)
    assert not decision.allowed
    assert decision.count == 4
    assert decision.retry_after == 60

    # Other clients have their own budget
    assert (await limiter.hit("10.0.0.2", limit=3)).allowed


@pytest.mark.asyncio
async def test_rate_limit_window_set_on_first_hit_only(lock_store):
    limiter = ClientRateLimiter(lock_store, window_seconds=60)
    await limiter.hit("10.0.0.1", limit=10)
    await lock_store.expire(keys.rate_limit("10.0.0.1"), 5)

    await limiter.hit("10.0.0.1", limit=10)

    assert 0 < await lock_store.ttl(keys.rate_limit("10.0.0.1")) <= 5


@pytest.mark.asyncio
async def test_rate_limit_counts_rejected_requests(lock_store):
    limiter = ClientRateLimiter(lock_store, window_seconds=60)
    for _ in range(5):
        await limiter.hit("10.0.0.1", limit=2)

    assert await lock_store.get(keys.rate_limit("10.0.0.1")) == "5"


@pytest.mark.asyncio
async def test_rate_limit_shares_one_counter_across_limits(lock_store):
    """Browsing spends the same budget the tighter booking limit is checked against."""
    limiter = ClientRateLimiter(lock_store, window_seconds=60)
    for _ in range(3):
        assert (await limiter.hit("10.0.0.1", limit=60)).allowed

    assert not (await limiter.hit("10.0.0.1", limit=3)).allowed


@pytest.mark.asyncio
async def test_rate_limit_fails_open(lock_store):
    limiter = ClientRateLimiter(lock_store)

    async def broken(*args, **kwargs):
        raise ConnectionError("redis down")

    limiter.script = broken

    decision = await limiter.hit("10.0.0.1", limit=1)
    assert decision.allowed


# ---------------------------------------------------------------------------
# Deferred admission queue
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_job_not_claimable_before_its_delay(queue, clock):
    await queue.enqueue("10.0.0.1", "tok", delay=10, priority=3)

    assert await queue.promote_due() == 0
    assert await queue.claim() is None

    clock.now += 10
    assert await queue.promote_due() == 1
    job = await queue.claim()
    assert job.client_id == "10.0.0.1"
    assert job.token == "tok"
    assert job.attempts == 0
    assert await queue.claim() is None


@pytest.mark.asyncio
async def test_lower_priority_value_claimed_first(queue, clock):
    await queue.enqueue("late-low", "t1", delay=0, priority=8)
    clock.now += 1
    await queue.enqueue("urgent", "t2", delay=0, priority=1)
    clock.now += 1
    await queue.enqueue("late-urgent", "t3", delay=0, priority=1)

    await queue.promote_due()

    claimed = [(await queue.claim()).client_id for _ in range(3)]
    assert claimed == ["urgent", "late-urgent", "late-low"]


@pytest.mark.asyncio
async def test_retry_backs_off_exponentially(lock_store, clock):
    queue = DeferredAdmissionQueue(lock_store, max_attempts=3, backoff_seconds=2.0, clock=clock)
    job = await queue.enqueue("10.0.0.1", "tok", delay=0, priority=0)

    assert await queue.retry(job) is True
    assert await lock_store.zscore(keys.ADMISSION_DELAYED, job.id) == pytest.approx(clock.now + 2.0)

    assert await queue.retry(job) is True
    assert await lock_store.zscore(keys.ADMISSION_DELAYED, job.id) == pytest.approx(clock.now + 4.0)
    assert await lock_store.hget(keys.admission_job(job.id), "attempts") == "2"

    # Third failure uses up the attempts and drops the job
    assert await queue.retry(job) is False
    assert await lock_store.exists(keys.admission_job(job.id)) == 0


@pytest.mark.asyncio
async def test_claim_skips_jobs_whose_payload_expired(queue, lock_store, clock):
    stale = await queue.enqueue("gone", "t1", delay=0, priority=0)
    await queue.enqueue("here", "t2", delay=0, priority=5)
    await lock_store.delete(keys.admission_job(stale.id))

    await queue.promote_due()
    job = await queue.claim()

    assert job.client_id == "here"


@pytest.mark.asyncio
async def test_completed_job_leaves_no_residue(queue, lock_store):
    """Job hashes expire on their own; the queue sets drain to empty."""
    job = await queue.enqueue("10.0.0.1", "tok", delay=0, priority=0)
    assert 0 < await lock_store.ttl(keys.admission_job(job.id))

    await queue.promote_due()
    claimed = await queue.claim()
    await queue.complete(claimed)

    assert await lock_store.zcard(keys.ADMISSION_DELAYED) == 0
    assert await lock_store.zcard(keys.ADMISSION_READY) == 0
    assert await lock_store.exists(keys.admission_job(job.id)) == 0
    assert sorted(await lock_store.keys("*")) == [keys.ADMISSION_JOB_SEQ]


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_worker_hands_queued_client_a_token(admission, lock_store, queue, clock):
    await lock_store.set(keys.show_demand(5), settings.SHOW_DEMAND_THRESHOLD + 1, ex=300)
    deferred = await admission.check("10.0.0.1", show_id=5)

    worker = DeferredAdmissionWorker(lock_store, queue=queue, rng=random.Random(1))
    clock.now += settings.QUEUE_DELAY_MAX_SECONDS

    assert await worker.drain_once() == 1
    await worker.wait_idle()

    assert await lock_store.get(keys.admitted_token(deferred.token)) == "true"
    assert 0 < await lock_store.ttl(keys.admitted_token(deferred.token)) <= settings.ADMITTED_TOKEN_TTL_SECONDS
    assert await queue.depth() == 0

    decision = await admission.check("10.0.0.1", show_id=5)
    assert decision.admitted
    assert decision.reason == "token"


@pytest.mark.asyncio
async def test_worker_skips_client_who_left_the_queue(lock_store, queue, clock):
    job = await queue.enqueue("10.0.0.1", "old-token", delay=0, priority=0)
    await lock_store.set(keys.queue_marker("10.0.0.1"), "new-token", ex=300)

    worker = DeferredAdmissionWorker(lock_store, queue=queue)
    await worker.drain_once()
    await worker.wait_idle()

    assert await lock_store.exists(keys.admitted_token("old-token")) == 0
    assert await lock_store.exists(keys.admission_job(job.id)) == 0


@pytest.mark.asyncio
async def test_worker_respects_concurrency(lock_store, queue):
    for i in range(5):
        await queue.enqueue(f"10.0.0.{i}", f"tok-{i}", delay=0, priority=0)

    release = asyncio.Event()

    class BlockingWorker(DeferredAdmissionWorker):
        async def process(self, job):
            await release.wait()
            return False

    worker = BlockingWorker(lock_store, queue=queue, concurrency=2)
    assert await worker.drain_once() == 2
    # Both slots busy: nothing more is claimed
    assert await worker.drain_once() == 0
    assert await queue.depth() == 3

    release.set()
    await worker.wait_idle()
    started = await worker.drain_once()
    await worker.wait_idle()
    started += await worker.drain_once()
    await worker.wait_idle()
    assert started == 3
    assert await queue.depth() == 0


@pytest.mark.asyncio
async def test_failed_job_is_retried_then_dropped(lock_store, clock):
    queue = DeferredAdmissionQueue(lock_store, max_attempts=3, backoff_seconds=2.0, clock=clock)
    job = await queue.enqueue("10.0.0.1", "tok", delay=0, priority=0)

    class FailingWorker(DeferredAdmissionWorker):
        calls = 0

        async def process(self, job):
            FailingWorker.calls += 1
            raise RuntimeError("processing failed")

    worker = FailingWorker(lock_store, queue=queue)

    assert await worker.drain_once() == 1
    await worker.wait_idle()
    assert await lock_store.hget(keys.admission_job(job.id), "attempts") == "1"

    # Not due until the 2s backoff has passed
    assert await worker.drain_once() == 0
    clock.now += 2
    assert await worker.drain_once() == 1
    await worker.wait_idle()

    clock.now += 4
    assert await worker.drain_once() == 1
    await worker.wait_idle()

    assert FailingWorker.calls == 3
    assert await lock_store.exists(keys.admission_job(job.id)) == 0
    assert await queue.depth() == 0
