"""Shared pytest fixtures for recurring payment tests."""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from lnautopay.domain.payments.entities import DecodedInvoice, RecipientConfig
from tests.fixtures import (
    ALICE,
    DAY_MS,
    FakeClock,
    FakePaymentNetworkClient,
    InMemoryPaymentRecordRepository,
    StaticInvoiceSource,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def record_repository() -> InMemoryPaymentRecordRepository:
    """Provide a fresh in-memory payment record repository."""
    return InMemoryPaymentRecordRepository()


@pytest.fixture
def payment_network(clock: FakeClock) -> FakePaymentNetworkClient:
    return FakePaymentNetworkClient(clock=clock)


@pytest.fixture
def invoice_source() -> StaticInvoiceSource:
    return StaticInvoiceSource()


@pytest.fixture
def make_recipient() -> Callable[..., RecipientConfig]:
    """Build a recipient with an invoice URL derived from its destination."""

    def _make(
        destination: str = ALICE,
        period: int = DAY_MS,
        expected_amount: Optional[int] = None,
    ) -> RecipientConfig:
        return RecipientConfig(
            destination=destination,
            invoice_source_url=f"https://{destination[:8]}.example.com/invoice",
            period=period,
            expected_amount=expected_amount,
        )

    return _make


@pytest.fixture
def offer_invoice(
    payment_network: FakePaymentNetworkClient, invoice_source: StaticInvoiceSource
) -> Callable[..., str]:
    """Make a recipient's endpoint serve a decodable invoice."""

    def _offer(
        recipient: RecipientConfig,
        amount: Optional[int] = 1000,
        destination: Optional[str] = None,
        invoice: Optional[str] = None,
    ) -> str:
        invoice = invoice or f"lnbc{amount or 0}n1{recipient.destination[:12]}"
        payment_network.add_invoice(
            invoice,
            DecodedInvoice(
                destination=destination or recipient.destination,
                payment_hash="ab" * 32,
                amount=amount,
            ),
        )
        invoice_source.set_response(recipient.invoice_source_url, invoice)
        return invoice

    return _offer
