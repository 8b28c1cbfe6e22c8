"""Test fixtures for in-memory implementations."""

from .fake_clock import FakeClock
from .fake_payment_network import FakePaymentNetworkClient, StaticInvoiceSource
from .in_memory_repositories import InMemoryPaymentRecordRepository
from .in_memory_storage import InMemoryKeyValueStore
from .sample_data import ALICE, BOB, CAROL, DAY_MS

__all__ = [
    "ALICE",
    "BOB",
    "CAROL",
    "DAY_MS",
    "FakeClock",
    "FakePaymentNetworkClient",
    "InMemoryKeyValueStore",
    "InMemoryPaymentRecordRepository",
    "StaticInvoiceSource",
]
