"""
Admission control strategy interface.
Allows swapping between different admission approaches.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class AdmissionDecision:
    """
    Outcome of one admission check.

    reason is one of:
      admitted  - under the demand threshold, counted
      token     - consumed an admitted token handed out by the queue worker
      queued    - over threshold, client just placed in the deferred queue
      waiting   - client already queued and not promoted yet
      open      - no admission control configured
      fail_open - lock store unreachable, request let through
    """

    admitted: bool
    reason: str
    estimated_wait_seconds: int = 0
    token: Optional[str] = None


class AdmissionStrategy(ABC):
    """
    Interface for admission control strategies.

    Implementations:
    - OpenAdmission: No gate, every request reaches the reservation engine
    - DemandAdmission: Redis demand counters + deferred admission queue
    """

    @abstractmethod
    async def check(self, client_id: str, show_id: Optional[int] = None) -> AdmissionDecision:
        """
        Decide whether a reservation-path request may proceed now.

        Args:
            client_id: Stable identity of the caller (IP or forwarded-for)
            show_id: Show the request targets, if it names one

        Returns:
            AdmissionDecision; admitted=False means answer with a deferral
        """
        pass
