"""PaymentRecord repository implementations: table store and key-value store."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import uuid4

from pydantic import ValidationError as ModelValidationError
from redis.exceptions import RedisError

from ...domain.errors import QueryError, WriteError
from ...domain.payments.entities import PaymentRecord
from ...domain.payments.payment_record_repository import PaymentRecordRepository
from ..record_store import (
    ColumnSpec,
    InsertQuery,
    Order,
    RecordStore,
    SelectQuery,
    TableSchema,
)
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)

PAYMENTS_TABLE = "payments"

PAYMENTS_SCHEMA = TableSchema(
    table_name=PAYMENTS_TABLE,
    columns=[
        ColumnSpec(name="id", type="integer", is_primary_key=True),
        ColumnSpec(name="destination", type="varchar(255)", not_null=True),
        ColumnSpec(name="invoice", type="text"),
        # Nullable so failed runs still leave an audit row
        ColumnSpec(name="preimage", type="varchar(255)", unique=True),
        ColumnSpec(name="amount", type="bigint"),
        ColumnSpec(name="timestamp", type="bigint", not_null=True),
        ColumnSpec(name="success", type="varchar(5)", not_null=True),
        ColumnSpec(name="error", type="text"),
    ],
    if_not_exists=True,
)


class SqlPaymentRecordRepository(PaymentRecordRepository):
    """PaymentRecord repository over a RecordStore table."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def ensure_schema(self) -> None:
        await self.store.create_table(PAYMENTS_SCHEMA)

    async def save(self, record: PaymentRecord) -> PaymentRecord:
        await self.store.write(InsertQuery(table=PAYMENTS_TABLE, data=record.to_row()))
        return record

    async def get_latest_successful(self, destination: str) -> Optional[PaymentRecord]:
        result = await self.store.find(
            SelectQuery(
                table=PAYMENTS_TABLE,
                fields=["*"],
                conditions={"destination": destination, "success": "true"},
                order=[Order(column="timestamp", direction="DESC")],
                limit=1,
            )
        )
        if not result.rows:
            return None
        return PaymentRecord.from_row(result.rows[0])

    async def list_by_destination(
        self, destination: str, limit: int = 20
    ) -> List[PaymentRecord]:
        result = await self.store.find(
            SelectQuery(
                table=PAYMENTS_TABLE,
                conditions={"destination": destination},
                order=[Order(column="timestamp", direction="DESC")],
                limit=limit,
            )
        )
        return [PaymentRecord.from_row(row) for row in result.rows]

    async def aclose(self) -> None:
        await self.store.aclose()


class KeyValuePaymentRecordRepository(PaymentRecordRepository):
    """PaymentRecord repository using a KeyValueStore.

    Keys:
      - payment_record:{id} -> PaymentRecord JSON
      - payment_record:preimage:{preimage} -> id (uniqueness guard)
      - payment_records:{destination} -> sorted set of ids by timestamp
      - payment_records:success:{destination} -> same, successful records only
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def ensure_schema(self) -> None:
        """Nothing to create for a key-value store."""
        return None

    async def save(self, record: PaymentRecord) -> PaymentRecord:
        """Insert a record; on a store error the keys written so far are removed.

        A dangling id left in a sorted-set index is skipped when loading.
        """
        record_id = uuid4().hex
        written: List[str] = []
        try:
            if record.preimage is not None:
                guard_key = f"payment_record:preimage:{record.preimage}"
                claimed = await self.store.set_if_absent(guard_key, record_id)
                if not claimed:
                    raise WriteError(
                        f"A payment with preimage {record.preimage} is already recorded"
                    )
                written.append(guard_key)

            record_key = f"payment_record:{record_id}"
            written.append(record_key)
            await self.store.set(record_key, record.model_dump_json())
            await self.store.zadd(
                f"payment_records:{record.destination}", {record_id: record.timestamp}
            )
            if record.success:
                await self.store.zadd(
                    f"payment_records:success:{record.destination}",
                    {record_id: record.timestamp},
                )
        except RedisError as e:
            await self._discard(written)
            raise WriteError(f"Could not write payment record: {e}", cause=e) from e
        return record

    async def _discard(self, keys: List[str]) -> None:
        for key in reversed(keys):
            try:
                await self.store.delete(key)
            except RedisError as e:
                logger.warning("Could not remove partial record key %s: %s", key, e)

    async def _load(self, record_ids: List[str]) -> List[PaymentRecord]:
        records: List[PaymentRecord] = []
        for record_id in record_ids:
            data = await self.store.get(f"payment_record:{record_id}")
            if not data:
                continue
            try:
                records.append(PaymentRecord.model_validate_json(data))
            except ModelValidationError as e:
                raise QueryError(f"Corrupt payment record {record_id}: {e}") from e
        return records

    async def get_latest_successful(self, destination: str) -> Optional[PaymentRecord]:
        try:
            ids = await self.store.zrevrange(
                f"payment_records:success:{destination}", 0, 0
            )
            records = await self._load(ids)
        except RedisError as e:
            raise QueryError(f"Could not query payment records: {e}", cause=e) from e
        return records[0] if records else None

    async def list_by_destination(
        self, destination: str, limit: int = 20
    ) -> List[PaymentRecord]:
        try:
            ids = await self.store.zrevrange(
                f"payment_records:{destination}", 0, limit - 1
            )
            return await self._load(ids)
        except RedisError as e:
            raise QueryError(f"Could not query payment records: {e}", cause=e) from e

    async def aclose(self) -> None:
        await self.store.aclose()
