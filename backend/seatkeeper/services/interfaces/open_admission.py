"""
Open admission strategy - no gate.
Relies entirely on the reservation engine's locking.
"""

from typing import Optional

from seatkeeper.services.interfaces.admission import AdmissionDecision, AdmissionStrategy


class OpenAdmission(AdmissionStrategy):
    """
    No admission control - always admit.

    Use when:
    - Local development without Redis-backed queueing
    - Load is known to stay far below the demand thresholds
    """

    async def check(self, client_id: str, show_id: Optional[int] = None) -> AdmissionDecision:
        return AdmissionDecision(admitted=True, reason="open")
