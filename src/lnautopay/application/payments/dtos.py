"""Data transfer objects for the payments application layer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ...domain.payments.entities import PaymentRecord, RecipientConfig


class PassSummary(BaseModel):
    """Outcome counts of one evaluation pass."""

    checked: int = 0
    due: int = 0
    skipped_in_flight: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: int = 0


class RecipientResponseDTO(BaseModel):
    destination: str
    invoice_source_url: str
    period: int
    expected_amount: Optional[int] = None

    @classmethod
    def from_entity(cls, recipient: RecipientConfig) -> "RecipientResponseDTO":
        return cls(
            destination=recipient.destination,
            invoice_source_url=recipient.invoice_source_url,
            period=recipient.period,
            expected_amount=recipient.expected_amount,
        )


class PaymentRecordResponseDTO(BaseModel):
    destination: str
    invoice: Optional[str] = None
    preimage: Optional[str] = None
    amount: Optional[int] = None
    timestamp: int
    success: bool
    error: Optional[str] = None

    @classmethod
    def from_entity(cls, record: PaymentRecord) -> "PaymentRecordResponseDTO":
        return cls.model_validate(record.model_dump())


class PaymentRecordListDTO(BaseModel):
    destination: str
    records: list[PaymentRecordResponseDTO] = Field(default_factory=list)
