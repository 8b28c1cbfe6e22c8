"""Process wiring: settings -> drivers -> engine, plus start-up and shutdown."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .application.payments.engine import RecurringPaymentEngine
from .domain.errors import ConnectionNotReadyError
from .domain.payments.entities import IntervalConfig, RecipientConfig
from .domain.payments.payment_record_repository import PaymentRecordRepository
from .domain.shared import InvoiceSourceProtocol, PaymentNetworkClientProtocol
from .env import Settings, load_recurring_plan
from .infrastructure.factories import (
    build_lnd_connection,
    build_payment_network_client,
    build_record_repository,
)
from .infrastructure.invoice_source import HttpInvoiceSource
from .infrastructure.lightning.lnd_connection import LndConnection

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a running process owns."""

    engine: RecurringPaymentEngine
    record_repository: PaymentRecordRepository
    payment_network: PaymentNetworkClientProtocol
    invoice_source: InvoiceSourceProtocol
    check_interval: Union[str, IntervalConfig]
    run_pass_on_start: bool = False
    connection: Optional[LndConnection] = None
    recipients: List[RecipientConfig] = field(default_factory=list)

    async def start(self) -> None:
        """Create the schema, connect to the node and start the recurring job.

        Schema errors are fatal. A node that is not ready yet is only logged;
        every later call retries the connection sequence.
        """
        await self.record_repository.ensure_schema()

        if self.connection is not None:
            try:
                await self.connection.initialize()
            except ConnectionNotReadyError as e:
                logger.error("Payment network not ready at start-up: %s", e)

        self.engine.start(self.check_interval, fire_immediately=self.run_pass_on_start)
        logger.info(
            "Recurring payments started for %d recipient(s)", len(self.recipients)
        )

    async def shutdown(self) -> None:
        self.engine.stop()
        if self.engine.job is not None:
            await self.engine.job.wait_idle()
        await self.invoice_source.aclose()
        await self.payment_network.aclose()
        await self.record_repository.aclose()


def build_runtime(settings: Settings) -> Runtime:
    """Build drivers and the engine. Raises ConfigurationError on bad config."""
    if settings.recipients_file:
        plan = load_recurring_plan(settings.recipients_file, settings.check_interval)
        recipients, check_interval = plan.recipients, plan.check_interval
    else:
        logger.warning("RECIPIENTS_FILE not set; no recurring payments configured")
        recipients, check_interval = [], settings.check_interval

    record_repository = build_record_repository(settings)
    connection = None
    if settings.ln_driver == "lnd-rest":
        connection = build_lnd_connection(settings)
    payment_network = build_payment_network_client(settings, connection)
    invoice_source = HttpInvoiceSource(timeout=settings.invoice_timeout_seconds)

    engine = RecurringPaymentEngine(
        recipients, payment_network, invoice_source, record_repository
    )
    return Runtime(
        engine=engine,
        record_repository=record_repository,
        payment_network=payment_network,
        invoice_source=invoice_source,
        check_interval=check_interval,
        run_pass_on_start=settings.run_pass_on_start,
        connection=connection,
        recipients=recipients,
    )
