"""PaymentRecord domain repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .entities import PaymentRecord


class PaymentRecordRepository(ABC):
    """Abstract repository interface for PaymentRecord entities."""

    @abstractmethod
    async def ensure_schema(self) -> None:
        """Create the backing table/indices if they do not exist yet."""
        pass

    @abstractmethod
    async def save(self, record: PaymentRecord) -> PaymentRecord:
        """Insert a record. Raises WriteError on failure."""
        pass

    @abstractmethod
    async def get_latest_successful(self, destination: str) -> Optional[PaymentRecord]:
        """
        Most recent record with success=true for the destination, by timestamp.
        Raises QueryError on failure.
        """
        pass

    @abstractmethod
    async def list_by_destination(
        self, destination: str, limit: int = 20
    ) -> List[PaymentRecord]:
        """Most recent records (successful or not) for the destination."""
        pass

    async def aclose(self) -> None:
        """Release backend resources."""
        return None
