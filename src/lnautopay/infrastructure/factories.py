"""Backend selection: build the store and payment-network drivers from settings."""

from __future__ import annotations

from typing import Optional

from ..domain.errors import ConfigurationError
from ..domain.payments.payment_record_repository import PaymentRecordRepository
from ..domain.shared import PaymentNetworkClientProtocol
from ..env import Settings
from .database import DatabaseClient
from .lightning.lnd_client import LndRestClient
from .lightning.lnd_connection import LndConnection, LndConnectionConfig
from .payments.payment_record_repository_impl import (
    KeyValuePaymentRecordRepository,
    SqlPaymentRecordRepository,
)
from .sql_record_store import SqlRecordStore
from .storage import RedisKeyValueStore


def build_record_repository(settings: Settings) -> PaymentRecordRepository:
    """Pick the record backend from the database URL scheme."""
    scheme = settings.database_url.split(":", 1)[0].lower()
    if scheme.startswith("sqlite"):
        store = SqlRecordStore(settings.database_url, echo=settings.database_echo)
        return SqlPaymentRecordRepository(store)
    if scheme in ("redis", "rediss"):
        return KeyValuePaymentRecordRepository(
            RedisKeyValueStore(DatabaseClient(settings))
        )
    raise ConfigurationError(f"Unsupported database URL scheme: {scheme!r}")


def build_lnd_connection(settings: Settings) -> LndConnection:
    return LndConnection(
        LndConnectionConfig(
            rest_url=settings.lnd_rest_url,
            macaroon_hex=settings.lnd_macaroon_hex,
            wallet_password=settings.lnd_wallet_password,
            tls_cert_path=settings.lnd_tls_cert_path,
            timeout=settings.lnd_timeout_seconds,
        )
    )


def build_payment_network_client(
    settings: Settings, connection: Optional[LndConnection] = None
) -> PaymentNetworkClientProtocol:
    """Pick the payment-network driver from `ln_driver`."""
    if settings.ln_driver == "lnd-rest":
        return LndRestClient(connection or build_lnd_connection(settings))
    raise ConfigurationError(f"Payment network driver '{settings.ln_driver}' not found")
