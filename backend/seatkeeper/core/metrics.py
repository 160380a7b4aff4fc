"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation engine metrics
reservation_operations = Counter(
    'reservation_operations_total',
    'Reservation engine operations',
    ['operation', 'outcome']  # lock/confirm/cancel x success/conflict/expired/...
)

lock_latency = Histogram(
    'seat_lock_latency_seconds',
    'Seat lock request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

lock_store_cleanup_errors = Counter(
    'lock_store_cleanup_errors_total',
    'Failed best-effort deletions of seat lock keys'
)

# Admission control metrics
admission_requests = Counter(
    'admission_requests_total',
    'Total admission control decisions',
    ['result']  # admitted, token, queued, waiting, open, fail_open
)

admission_latency = Histogram(
    'admission_check_latency_seconds',
    'Admission check latency',
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01]
)

rate_limit_decisions = Counter(
    'rate_limit_decisions_total',
    'Per-client rate limit decisions',
    ['result']  # allowed, limited, fail_open
)

admission_jobs = Counter(
    'admission_queue_jobs_total',
    'Deferred admission queue jobs',
    ['outcome']  # promoted, lapsed, retried, exhausted
)

admission_jobs_in_flight = Gauge(
    'admission_queue_jobs_in_flight',
    'Deferred admission jobs currently being processed'
)

# Expiry sweeper metrics
sweeps = Counter(
    'expiry_sweeps_total',
    'Expiry sweep runs',
    ['result']  # completed, skipped, error
)

swept_bookings = Counter(
    'expiry_swept_bookings_total',
    'Bookings processed by the expiry sweeper',
    ['outcome']  # reclaimed, failed
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(operation: str, outcome: str):
    """Record a reservation engine outcome."""
    reservation_operations.labels(operation=operation, outcome=outcome).inc()


def record_admission(result: str):
    """Record admission control decision."""
    admission_requests.labels(result=result).inc()


def record_rate_limit(result: str):
    rate_limit_decisions.labels(result=result).inc()


def record_admission_job(outcome: str):
    admission_jobs.labels(outcome=outcome).inc()


def record_sweep(result: str, reclaimed: int = 0, failed: int = 0):
    sweeps.labels(result=result).inc()
    if reclaimed:
        swept_bookings.labels(outcome="reclaimed").inc(reclaimed)
    if failed:
        swept_bookings.labels(outcome="failed").inc(failed)
