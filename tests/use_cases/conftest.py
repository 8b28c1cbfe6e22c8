"""Pytest fixtures for use case tests."""

from __future__ import annotations

import pytest

from lnautopay.application.payments.pipeline import PaymentPipeline
from tests.fixtures import (
    FakeClock,
    FakePaymentNetworkClient,
    InMemoryPaymentRecordRepository,
    StaticInvoiceSource,
)


@pytest.fixture
def pipeline(
    payment_network: FakePaymentNetworkClient,
    invoice_source: StaticInvoiceSource,
    record_repository: InMemoryPaymentRecordRepository,
    clock: FakeClock,
) -> PaymentPipeline:
    """Provide a PaymentPipeline wired to in-memory fakes."""
    return PaymentPipeline(
        payment_network, invoice_source, record_repository, clock=clock
    )
