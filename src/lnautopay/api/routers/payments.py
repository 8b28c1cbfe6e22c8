"""Recipient, payment record and pass routes."""

from __future__ import annotations

import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from prometheus_client import Histogram

from ...application.payments.dtos import (
    PassSummary,
    PaymentRecordListDTO,
    PaymentRecordResponseDTO,
    RecipientResponseDTO,
)
from ...application.payments.engine import RecurringPaymentEngine
from ...domain.errors import QueryError
from ...domain.payments.payment_record_repository import PaymentRecordRepository
from ..dependencies import get_engine, get_record_repository

router = APIRouter(tags=["payments"])


manual_pass_duration_seconds = Histogram(
    "lnautopay_manual_pass_duration_seconds",
    "Wall time of passes triggered through the API",
)


@router.get("/recipients", response_model=List[RecipientResponseDTO])
async def list_recipients(
    engine: RecurringPaymentEngine = Depends(get_engine),
) -> List[RecipientResponseDTO]:
    """List configured recurring payments."""
    return [RecipientResponseDTO.from_entity(r) for r in engine.recipients]


@router.get(
    "/recipients/{destination}/payments",
    response_model=PaymentRecordListDTO,
)
async def list_payments(
    destination: str = Path(..., description="Recipient node public key"),
    limit: int = Query(20, ge=1, le=500),
    engine: RecurringPaymentEngine = Depends(get_engine),
    record_repository: PaymentRecordRepository = Depends(get_record_repository),
) -> PaymentRecordListDTO:
    """Most recent payment records for a configured recipient."""
    if not any(r.destination == destination for r in engine.recipients):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipient not configured",
        )
    try:
        records = await record_repository.list_by_destination(destination, limit)
    except QueryError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Failed to read payment records: {str(e)}",
        )
    return PaymentRecordListDTO(
        destination=destination,
        records=[PaymentRecordResponseDTO.from_entity(r) for r in records],
    )


@router.post("/passes", response_model=PassSummary)
async def run_pass(
    engine: RecurringPaymentEngine = Depends(get_engine),
) -> PassSummary:
    """Run one evaluation pass now, outside the schedule."""
    start_time = time.perf_counter()
    summary = await engine.run_pass()
    manual_pass_duration_seconds.observe(time.perf_counter() - start_time)
    return summary
