"""
Payment oracle standing in for a real gateway.

It only answers success or failure after a delay. Confirming the booking
stays the client's job once a payment succeeds.
"""

import asyncio
import random
import uuid
from decimal import Decimal
from typing import Optional

from seatkeeper.core.config import get_settings
from seatkeeper.core.exceptions import PaymentFailedError
from seatkeeper.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


async def simulate_payment(
    booking_id: int,
    amount: Decimal,
    rng: Optional[random.Random] = None,
) -> str:
    """Returns a transaction id, or raises PaymentFailedError."""
    rng = rng or random
    await asyncio.sleep(settings.PAYMENT_DELAY_SECONDS)

    if rng.random() >= settings.PAYMENT_SUCCESS_RATE:
        logger.info("payment_declined", booking_id=booking_id, amount=str(amount))
        raise PaymentFailedError(error="Insufficient funds")

    transaction_id = f"txn_{uuid.uuid4().hex[:16]}"
    logger.info("payment_succeeded", booking_id=booking_id, amount=str(amount), transaction_id=transaction_id)
    return transaction_id
