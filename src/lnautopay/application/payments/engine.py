"""Recurring payment engine: wires selection, pipelines and scheduling."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Set

from prometheus_client import Counter

from ...domain.errors import ConfigurationError, QueryError
from ...domain.payments.entities import PaymentRecord, RecipientConfig, now_ms
from ...domain.payments.payment_record_repository import PaymentRecordRepository
from ...domain.shared import InvoiceSourceProtocol, PaymentNetworkClientProtocol
from .due_payments import DuePaymentSelector
from .dtos import PassSummary
from .pipeline import PaymentPipeline
from .scheduler import CheckInterval, ScheduledJob, schedule

logger = logging.getLogger(__name__)


passes_total = Counter(
    "lnautopay_passes_total",
    "Total evaluation passes started",
)


class RecurringPaymentEngine:
    """Pays configured recipients whenever their period has elapsed.

    Each pass checks every recipient concurrently, then runs a pipeline for
    each due recipient concurrently. Passes may overlap; a destination that
    already has a pipeline in flight in this process is skipped, and a claimed
    destination is re-checked before paying so a payment recorded by an
    overlapping pass is never repeated.
    """

    def __init__(
        self,
        recipients: Sequence[RecipientConfig],
        payment_network: PaymentNetworkClientProtocol,
        invoice_source: InvoiceSourceProtocol,
        record_repository: PaymentRecordRepository,
        clock: Callable[[], int] = now_ms,
    ):
        destinations = [r.destination for r in recipients]
        duplicates = {d for d in destinations if destinations.count(d) > 1}
        if duplicates:
            raise ConfigurationError(
                f"Recipients configured more than once: {sorted(duplicates)}"
            )

        self.recipients: List[RecipientConfig] = list(recipients)
        self.record_repository = record_repository
        self.selector = DuePaymentSelector(record_repository, clock=clock)
        self.pipeline = PaymentPipeline(
            payment_network, invoice_source, record_repository, clock=clock
        )
        self._in_flight: Set[str] = set()
        self.job: Optional[ScheduledJob] = None

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    async def run_pass(self) -> PassSummary:
        """Evaluate every recipient once and pay those that are due."""
        passes_total.inc()
        summary = PassSummary(checked=len(self.recipients))

        due = await self.selector.select(self.recipients)
        summary.due = len(due)

        claimed: List[RecipientConfig] = []
        for recipient in due:
            if recipient.destination in self._in_flight:
                logger.info(
                    "Payment to %s already in flight, skipping", recipient.destination
                )
                summary.skipped_in_flight += 1
                continue
            self._in_flight.add(recipient.destination)
            claimed.append(recipient)

        rechecked_not_due: Set[str] = set()
        results = await asyncio.gather(
            *(
                self._run_claimed(recipient, rechecked_not_due)
                for recipient in claimed
            ),
            return_exceptions=True,
        )

        for recipient, result in zip(claimed, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error paying %s: %r", recipient.destination, result
                )
                summary.failed += 1
            elif result is None and recipient.destination in rechecked_not_due:
                summary.skipped_in_flight += 1
            elif result is None:
                summary.aborted += 1
            elif result.success:
                summary.succeeded += 1
            else:
                summary.failed += 1

        logger.info(
            "Pass finished: %d checked, %d due, %d paid, %d failed, %d aborted",
            summary.checked,
            summary.due,
            summary.succeeded,
            summary.failed,
            summary.aborted,
        )
        return summary

    async def _run_claimed(
        self, recipient: RecipientConfig, rechecked_not_due: Set[str]
    ) -> Optional[PaymentRecord]:
        try:
            # An overlapping pass may have paid between our check and our claim
            try:
                still_due = await self.selector.check(recipient)
            except QueryError as e:
                logger.error("Re-check failed for %s: %s", recipient.destination, e)
                still_due = False
            if not still_due:
                rechecked_not_due.add(recipient.destination)
                logger.info("%s no longer due, skipping", recipient.destination)
                return None
            return await self.pipeline.run(recipient)
        finally:
            self._in_flight.discard(recipient.destination)

    async def _scheduled_pass(self) -> None:
        await self.run_pass()

    def start(
        self, check_interval: CheckInterval, *, fire_immediately: bool = False
    ) -> ScheduledJob:
        """Start the recurring job. Must be called with a running event loop."""
        if self.job is not None and self.job.running:
            return self.job
        self.job = schedule(
            self._scheduled_pass, check_interval, fire_immediately=fire_immediately
        )
        return self.job

    def stop(self) -> None:
        if self.job is not None:
            self.job.stop()
