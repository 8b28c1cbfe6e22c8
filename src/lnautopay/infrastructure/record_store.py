"""Generic table store abstraction used to persist payment records.

Queries are described as data and validated up front; implementations must
bind every value as a parameter and never interpolate it into SQL text.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


Identifier = Annotated[str, AfterValidator(check_identifier)]


class ColumnSpec(BaseModel):
    name: Identifier
    type: str = Field(..., description="e.g. varchar(255), int, bigint, text")
    not_null: bool = False
    is_primary_key: bool = False
    unique: bool = False


class TableSchema(BaseModel):
    table_name: Identifier
    columns: List[ColumnSpec] = Field(..., min_length=1)
    if_not_exists: bool = False


class Order(BaseModel):
    column: Identifier
    direction: Literal["ASC", "DESC"] = "ASC"


class SelectQuery(BaseModel):
    table: Identifier
    fields: List[str] = Field(default_factory=lambda: ["*"], min_length=1)
    conditions: Dict[str, Any] = Field(default_factory=dict)
    order: List[Order] = Field(default_factory=list)
    limit: Optional[int] = Field(None, gt=0)

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v: List[str]) -> List[str]:
        if v == ["*"]:
            return v
        return [check_identifier(f) for f in v]

    @field_validator("conditions")
    @classmethod
    def validate_conditions(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        for key in v:
            check_identifier(key)
        return v


class InsertQuery(BaseModel):
    table: Identifier
    data: Dict[str, Any] = Field(..., min_length=1)

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        for key in v:
            check_identifier(key)
        return v


class FindResult(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)


class WriteResult(BaseModel):
    success: bool


class RecordStore(ABC):
    """Abstract table store with the minimal operations the engine needs."""

    @abstractmethod
    async def create_table(self, schema: TableSchema) -> None:
        """Create a table; with `if_not_exists` an existing table is left alone."""
        pass

    @abstractmethod
    async def write(self, query: InsertQuery) -> WriteResult:
        """Insert one row. Raises WriteError."""
        pass

    @abstractmethod
    async def find(self, query: SelectQuery) -> FindResult:
        """Select rows matching all conditions. Raises QueryError."""
        pass

    @abstractmethod
    async def drop_table(self, table_name: str) -> None:
        pass

    @abstractmethod
    async def table_exists(self, table_name: str) -> bool:
        pass

    async def aclose(self) -> None:
        return None
