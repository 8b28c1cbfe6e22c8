"""Payment domain entities: recipients, invoices, pending payments and records."""

from __future__ import annotations

import time
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class RecipientConfig(BaseModel):
    """Static configuration for one recurring payment obligation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    destination: str = Field(..., min_length=1, description="Recipient node public key")
    invoice_source_url: str = Field(..., alias="url")
    period: int = Field(..., gt=0, description="Milliseconds between payments")
    expected_amount: Optional[int] = Field(None, alias="amount", gt=0)

    @field_validator("invoice_source_url")
    @classmethod
    def validate_invoice_source_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"}:
            raise ValueError("Invoice source URL must start with http:// or https://")
        if not parsed.netloc:
            raise ValueError("Invoice source URL must include a host")
        return v


class IntervalConfig(BaseModel):
    """Structured check interval, translated to a cron expression by the scheduler."""

    model_config = ConfigDict(frozen=True)

    interval_number: int = Field(..., gt=0)
    interval_unit: Literal["minute", "hour", "day"]


class DecodedInvoice(BaseModel):
    """Structured fields of a payment-network invoice."""

    model_config = ConfigDict(frozen=True)

    destination: str
    payment_hash: str
    amount: Optional[int] = None
    timestamp: Optional[int] = None
    expiry: Optional[int] = None
    description: Optional[str] = None
    fallback_address: Optional[str] = None


class PendingPayment(BaseModel):
    """Unit of work submitted to the payment network."""

    model_config = ConfigDict(frozen=True)

    invoice: str
    decoded_invoice: DecodedInvoice
    custom_amount: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_amount_is_known(self) -> "PendingPayment":
        if self.decoded_invoice.amount is None and self.custom_amount is None:
            raise ValueError("custom_amount is required when the invoice has no amount")
        return self

    @property
    def amount_to_send(self) -> int:
        if self.custom_amount is not None:
            return self.custom_amount
        assert self.decoded_invoice.amount is not None
        return self.decoded_invoice.amount


class PaymentResult(BaseModel):
    """Outcome reported by the payment network for one send."""

    destination: str
    invoice: str
    preimage: Optional[str] = None
    amount: Optional[int] = None
    timestamp: int = Field(default_factory=now_ms)
    success: bool
    error: Optional[str] = None


class PaymentRecord(BaseModel):
    """Durable audit entry written once per pipeline run."""

    model_config = ConfigDict(frozen=True)

    destination: str
    invoice: Optional[str] = None
    preimage: Optional[str] = None
    amount: Optional[int] = None
    timestamp: int = Field(default_factory=now_ms)
    success: bool
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: PaymentResult) -> "PaymentRecord":
        return cls(
            destination=result.destination,
            invoice=result.invoice,
            preimage=result.preimage if result.success else None,
            amount=result.amount if result.success else None,
            timestamp=result.timestamp,
            success=result.success,
            error=result.error,
        )

    def to_row(self) -> dict[str, Optional[str | int]]:
        """Flatten into store columns; `success` is stored as a string."""
        return {
            "destination": self.destination,
            "invoice": self.invoice,
            "preimage": self.preimage,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "success": "true" if self.success else "false",
            "error": self.error,
        }

    @classmethod
    def from_row(cls, row: dict) -> "PaymentRecord":
        return cls(
            destination=row["destination"],
            invoice=row.get("invoice"),
            preimage=row.get("preimage"),
            amount=int(row["amount"]) if row.get("amount") is not None else None,
            timestamp=int(row["timestamp"]),
            success=str(row["success"]).lower() == "true",
            error=row.get("error"),
        )
