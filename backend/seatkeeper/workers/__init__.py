"""
Long-lived background tasks started once per process by the app lifespan.
"""

from .admission_worker import DeferredAdmissionWorker
from .expiry_sweeper import ExpirySweeper

__all__ = ["DeferredAdmissionWorker", "ExpirySweeper"]
