"""FastAPI dependencies for the control API."""

from __future__ import annotations

from fastapi import Depends, Request

from ..application.payments.engine import RecurringPaymentEngine
from ..bootstrap import Runtime
from ..domain.payments.payment_record_repository import PaymentRecordRepository


def get_runtime(request: Request) -> Runtime:
    """Get the runtime built during application start-up."""
    return request.app.state.runtime


def get_engine(runtime: Runtime = Depends(get_runtime)) -> RecurringPaymentEngine:
    """Get the recurring payment engine."""
    return runtime.engine


def get_record_repository(
    runtime: Runtime = Depends(get_runtime),
) -> PaymentRecordRepository:
    """Get the payment record repository."""
    return runtime.record_repository
