"""Payment execution pipeline: fetch, decode, validate, send, persist."""

from __future__ import annotations

import json
import logging
import time
from typing import Callable, Optional

from prometheus_client import Counter, Histogram

from ...domain.errors import (
    InvoiceFetchError,
    LnAutopayError,
    PersistenceError,
)
from ...domain.payments.entities import PaymentRecord, RecipientConfig, now_ms
from ...domain.payments.payment_record_repository import PaymentRecordRepository
from ...domain.shared import InvoiceSourceProtocol, PaymentNetworkClientProtocol
from .invoice_validators import build_pending_payment

logger = logging.getLogger(__name__)


pipeline_runs_total = Counter(
    "lnautopay_pipeline_runs_total",
    "Total pipeline runs by outcome",
    ["status"],
)

pipeline_duration_seconds = Histogram(
    "lnautopay_pipeline_duration_seconds",
    "Wall time of one pipeline run",
    ["status"],
)

invoice_fetch_failures_total = Counter(
    "lnautopay_invoice_fetch_failures_total",
    "Pipeline runs aborted because no invoice could be fetched",
)

record_write_failures_total = Counter(
    "lnautopay_record_write_failures_total",
    "Payment records that could not be persisted",
)


class PaymentPipeline:
    """Runs one payment for one due recipient.

    Every run that obtains an invoice persists exactly one PaymentRecord,
    whether the payment succeeds or fails. Only invoice-source errors and
    store write failures leave no record.
    """

    def __init__(
        self,
        payment_network: PaymentNetworkClientProtocol,
        invoice_source: InvoiceSourceProtocol,
        record_repository: PaymentRecordRepository,
        clock: Callable[[], int] = now_ms,
    ):
        self.payment_network = payment_network
        self.invoice_source = invoice_source
        self.record_repository = record_repository
        self.clock = clock

    async def run(self, recipient: RecipientConfig) -> Optional[PaymentRecord]:
        """Execute the pipeline.

        Returns:
            The record that was written (or attempted), or None when the run
            was aborted before an invoice was obtained.
        """
        start_time = time.perf_counter()

        # 1) Fresh invoice; nothing is committed yet, so a failure writes no record
        try:
            invoice = await self.invoice_source.fetch_invoice(
                recipient.invoice_source_url
            )
        except InvoiceFetchError as e:
            invoice_fetch_failures_total.inc()
            self._observe("aborted", start_time)
            logger.warning("Aborted payment to %s: %s", recipient.destination, e)
            return None

        # 2-4) Decode, validate, send
        record = await self._execute(recipient, invoice)

        # 5) Persist exactly one record
        await self._persist(record)

        status = "success" if record.success else "failed"
        self._observe(status, start_time)
        return record

    async def _execute(self, recipient: RecipientConfig, invoice: str) -> PaymentRecord:
        try:
            decoded = await self.payment_network.decode_invoice(invoice)
            payment = build_pending_payment(invoice, decoded, recipient)
            result = await self.payment_network.send(payment)
        except LnAutopayError as e:
            logger.warning("Payment to %s failed: %s", recipient.destination, e)
            return self._failure(recipient, invoice, e.to_payload())
        except Exception as e:
            # The send may already have settled
            logger.exception("Unexpected error paying %s", recipient.destination)
            payload = json.dumps({"type": type(e).__name__, "message": str(e)})
            return self._failure(recipient, invoice, payload)

        if result.success:
            logger.info("Paid %s sat to %s", result.amount, recipient.destination)
        else:
            logger.warning(
                "Payment to %s was rejected: %s", recipient.destination, result.error
            )
        return PaymentRecord.from_result(result)

    def _failure(
        self, recipient: RecipientConfig, invoice: str, error: str
    ) -> PaymentRecord:
        return PaymentRecord(
            destination=recipient.destination,
            invoice=invoice,
            timestamp=self.clock(),
            success=False,
            error=error,
        )

    async def _persist(self, record: PaymentRecord) -> None:
        try:
            await self.record_repository.save(record)
        except PersistenceError as e:
            record_write_failures_total.inc()
            logger.error(
                "Could not record payment to %s (success=%s): %s",
                record.destination,
                record.success,
                e,
            )

    @staticmethod
    def _observe(status: str, start_time: float) -> None:
        pipeline_runs_total.labels(status=status).inc()
        pipeline_duration_seconds.labels(status=status).observe(
            time.perf_counter() - start_time
        )
