"""Due-ness computation for recurring payments."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from ...domain.errors import QueryError
from ...domain.payments.entities import PaymentRecord, RecipientConfig, now_ms
from ...domain.payments.payment_record_repository import PaymentRecordRepository

logger = logging.getLogger(__name__)


def is_due(
    recipient: RecipientConfig,
    last_success: Optional[PaymentRecord],
    now: int,
) -> bool:
    """Return True when a new payment to the recipient is due. Pure function.

    A recipient without a successful payment is immediately due. Otherwise
    strictly more than `period` milliseconds must have elapsed; a payment
    exactly at the boundary is not due yet.
    """
    if last_success is None:
        return True
    return now - last_success.timestamp > recipient.period


class DuePaymentSelector:
    """Selects the recipients that are due, one store query per recipient."""

    def __init__(
        self,
        record_repository: PaymentRecordRepository,
        clock: Callable[[], int] = now_ms,
    ):
        self.record_repository = record_repository
        self.clock = clock

    async def check(self, recipient: RecipientConfig) -> bool:
        last_success = await self.record_repository.get_latest_successful(
            recipient.destination
        )
        return is_due(recipient, last_success, self.clock())

    async def select(
        self, recipients: Sequence[RecipientConfig]
    ) -> List[RecipientConfig]:
        """Run due-checks concurrently and keep the due recipients, in order.

        A recipient whose query fails is skipped for this pass.
        """
        results = await asyncio.gather(
            *(self.check(recipient) for recipient in recipients),
            return_exceptions=True,
        )

        due: List[RecipientConfig] = []
        for recipient, result in zip(recipients, results):
            if isinstance(result, QueryError):
                logger.error(
                    "Due-check failed for %s, skipping this pass: %s",
                    recipient.destination,
                    result,
                )
                continue
            if isinstance(result, BaseException):
                raise result
            if result:
                due.append(recipient)
        return due
