"""SQLAlchemy Core implementation of RecordStore (SQLite by default)."""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from typing import Any, Dict, List

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    insert,
    inspect,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.types import TypeEngine

from ..domain.errors import ConfigurationError, PersistenceError, QueryError, WriteError
from .record_store import (
    FindResult,
    InsertQuery,
    RecordStore,
    SelectQuery,
    TableSchema,
    WriteResult,
    check_identifier,
)

logger = logging.getLogger(__name__)

_VARCHAR = re.compile(r"^(?:varchar|char)\((\d+)\)$", re.IGNORECASE)


def parse_column_type(type_name: str) -> TypeEngine[Any]:
    """Map the schema's textual column types onto SQLAlchemy types."""
    normalized = type_name.strip().lower()
    match = _VARCHAR.match(normalized)
    if match:
        return String(int(match.group(1)))
    if normalized in ("int", "integer"):
        return Integer()
    if normalized == "bigint":
        return BigInteger()
    if normalized == "text":
        return Text()
    raise ConfigurationError(f"Unsupported column type: {type_name!r}")


class SqlRecordStore(RecordStore):
    """RecordStore over a synchronous SQLAlchemy engine.

    Blocking calls run in worker threads. Writes are serialized by a lock,
    reads run concurrently. All values are bound parameters.
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        connect_args: Dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self._engine: Engine = create_engine(
            database_url, echo=echo, connect_args=connect_args
        )
        self._metadata = MetaData()
        self._metadata_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def _table(self, table_name: str) -> Table:
        check_identifier(table_name)
        with self._metadata_lock:
            table = self._metadata.tables.get(table_name)
            if table is None:
                table = Table(table_name, self._metadata, autoload_with=self._engine)
            return table

    def _forget(self, table_name: str) -> None:
        with self._metadata_lock:
            table = self._metadata.tables.get(table_name)
            if table is not None:
                self._metadata.remove(table)

    async def create_table(self, schema: TableSchema) -> None:
        await asyncio.to_thread(self._create_table, schema)

    def _create_table(self, schema: TableSchema) -> None:
        columns = [
            Column(
                spec.name,
                parse_column_type(spec.type),
                primary_key=spec.is_primary_key,
                nullable=not (spec.not_null or spec.is_primary_key),
                unique=spec.unique or None,
            )
            for spec in schema.columns
        ]
        table = Table(schema.table_name, MetaData(), *columns)
        try:
            with self._write_lock:
                table.create(self._engine, checkfirst=schema.if_not_exists)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Could not create table {schema.table_name}: {e}", cause=e
            ) from e
        self._forget(schema.table_name)
        logger.info("Table %s ready", schema.table_name)

    async def write(self, query: InsertQuery) -> WriteResult:
        return await asyncio.to_thread(self._write, query)

    def _write(self, query: InsertQuery) -> WriteResult:
        try:
            table = self._table(query.table)
            unknown = set(query.data) - set(table.c.keys())
            if unknown:
                raise WriteError(
                    f"Unknown columns for {query.table}: {sorted(unknown)}"
                )
            with self._write_lock, self._engine.begin() as conn:
                conn.execute(insert(table).values(**query.data))
        except (NoSuchTableError, SQLAlchemyError) as e:
            raise WriteError(f"Could not write to {query.table}: {e}", cause=e) from e
        return WriteResult(success=True)

    async def find(self, query: SelectQuery) -> FindResult:
        return await asyncio.to_thread(self._find, query)

    def _find(self, query: SelectQuery) -> FindResult:
        try:
            table = self._table(query.table)
            referenced = (
                set(query.conditions)
                | {o.column for o in query.order}
                | (set() if query.fields == ["*"] else set(query.fields))
            )
            unknown = referenced - set(table.c.keys())
            if unknown:
                raise QueryError(
                    f"Unknown columns for {query.table}: {sorted(unknown)}"
                )

            if query.fields == ["*"]:
                columns = list(table.c)
            else:
                columns = [table.c[f] for f in query.fields]
            stmt = select(*columns)
            for key, value in query.conditions.items():
                stmt = stmt.where(table.c[key] == value)
            for o in query.order:
                column = table.c[o.column]
                stmt = stmt.order_by(
                    column.desc() if o.direction == "DESC" else column.asc()
                )
            if query.limit is not None:
                stmt = stmt.limit(query.limit)

            with self._engine.connect() as conn:
                rows: List[Dict[str, Any]] = [
                    dict(row._mapping) for row in conn.execute(stmt)
                ]
        except (NoSuchTableError, SQLAlchemyError) as e:
            raise QueryError(f"Could not query {query.table}: {e}", cause=e) from e
        return FindResult(rows=rows)

    async def drop_table(self, table_name: str) -> None:
        await asyncio.to_thread(self._drop_table, table_name)

    def _drop_table(self, table_name: str) -> None:
        try:
            table = self._table(table_name)
            with self._write_lock:
                table.drop(self._engine)
        except (NoSuchTableError, SQLAlchemyError) as e:
            raise PersistenceError(f"Could not drop {table_name}: {e}", cause=e) from e
        self._forget(table_name)

    async def table_exists(self, table_name: str) -> bool:
        check_identifier(table_name)
        return await asyncio.to_thread(inspect(self._engine).has_table, table_name)

    async def aclose(self) -> None:
        await asyncio.to_thread(self._engine.dispose)
