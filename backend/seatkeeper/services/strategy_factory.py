"""
Admission strategy factory.
Configures which admission control strategy to use.
"""

from typing import Optional

from seatkeeper.services.interfaces.admission import AdmissionStrategy
from seatkeeper.services.interfaces.open_admission import OpenAdmission
from seatkeeper.services.admission_service import DemandAdmission
from seatkeeper.services.rate_limiter import ClientRateLimiter
from seatkeeper.infrastructure.redis_client import RedisClient
from seatkeeper.core.config import get_settings

settings = get_settings()


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured admission strategy.

    ADMISSION_STRATEGY:
    - demand: DemandAdmission (Redis counters + deferred queue)
    - open: OpenAdmission (no gate)
    """
    if settings.ADMISSION_STRATEGY == "open":
        return OpenAdmission()
    return DemandAdmission(RedisClient.get_client())


# Singleton instances
_strategy: Optional[AdmissionStrategy] = None
_rate_limiter: Optional[ClientRateLimiter] = None


def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy


def get_rate_limiter() -> Optional[ClientRateLimiter]:
    """Get the per-client rate limiter, or None when RATE_LIMIT_ENABLED is off."""
    global _rate_limiter
    if not settings.RATE_LIMIT_ENABLED:
        return None
    if _rate_limiter is None:
        _rate_limiter = ClientRateLimiter(RedisClient.get_client())
    return _rate_limiter


def reset_admission() -> None:
    global _strategy, _rate_limiter
    _strategy = None
    _rate_limiter = None
