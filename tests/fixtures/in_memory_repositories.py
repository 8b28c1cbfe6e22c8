"""In-memory repository implementations for testing."""

from __future__ import annotations

from typing import List

from lnautopay.domain.payments.entities import PaymentRecord
from lnautopay.infrastructure.payments.payment_record_repository_impl import (
    KeyValuePaymentRecordRepository,
)

from .in_memory_storage import InMemoryKeyValueStore


class InMemoryPaymentRecordRepository(KeyValuePaymentRecordRepository):
    """In-memory payment record repository that also keeps every saved record."""

    def __init__(self) -> None:
        store = InMemoryKeyValueStore()
        super().__init__(store)
        self._store = store
        self.saved: List[PaymentRecord] = []

    async def save(self, record: PaymentRecord) -> PaymentRecord:
        saved = await super().save(record)
        self.saved.append(saved)
        return saved

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._store.clear()
        self.saved.clear()
