from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as ModelValidationError

from .domain.errors import ConfigurationError
from .domain.payments.entities import IntervalConfig, RecipientConfig


class Settings(BaseModel):
    """Typed application settings built from environment variables."""

    # Database settings
    database_url: str = "sqlite:///lnautopay.db"
    database_echo: bool = False

    # Payment network settings
    ln_driver: str = "lnd-rest"
    lnd_rest_url: str = "https://localhost:8080"
    lnd_macaroon_hex: Optional[str] = None
    lnd_wallet_password: Optional[str] = None
    lnd_tls_cert_path: Optional[str] = None
    lnd_timeout_seconds: float = 30.0

    # Recurring payments
    recipients_file: Optional[str] = None
    check_interval: Union[str, IntervalConfig] = "*/1 * * * *"
    invoice_timeout_seconds: float = 10.0
    run_pass_on_start: bool = False

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    # Application settings
    app_name: str = "lnautopay"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


def _parse_check_interval(raw: str) -> Union[str, IntervalConfig]:
    """Accept a cron string or a JSON object such as {"interval_number": 5, ...}."""
    if raw.strip().startswith("{"):
        return IntervalConfig.model_validate_json(raw)
    return raw


def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars."""
    try:
        return Settings(
            database_url=os.environ.get("DATABASE_URL", "sqlite:///lnautopay.db"),
            database_echo=os.environ.get("DATABASE_ECHO", "false").lower() == "true",
            ln_driver=os.environ.get("LN_DRIVER", "lnd-rest"),
            lnd_rest_url=os.environ.get("LND_REST_URL", "https://localhost:8080"),
            lnd_macaroon_hex=os.environ.get("LND_MACAROON_HEX"),
            lnd_wallet_password=os.environ.get("LND_WALLET_PASSWORD"),
            lnd_tls_cert_path=os.environ.get("LND_TLS_CERT_PATH"),
            lnd_timeout_seconds=float(os.environ.get("LND_TIMEOUT_SECONDS", "30")),
            recipients_file=os.environ.get("RECIPIENTS_FILE"),
            check_interval=_parse_check_interval(
                os.environ.get("CHECK_INTERVAL", "*/1 * * * *")
            ),
            invoice_timeout_seconds=float(
                os.environ.get("INVOICE_TIMEOUT_SECONDS", "10")
            ),
            run_pass_on_start=os.environ.get("RUN_PASS_ON_START", "false").lower()
            == "true",
            api_host=os.environ.get("API_HOST", "0.0.0.0"),
            api_port=int(os.environ.get("API_PORT", "8000")),
            api_debug=os.environ.get("API_DEBUG", "false").lower() == "true",
            app_name=os.environ.get("APP_NAME", "lnautopay"),
            app_version=os.environ.get("APP_VERSION", "1.0.0"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
    except (ModelValidationError, ValueError) as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e


class RecurringPaymentOptions(BaseModel):
    recurring_payments: List[RecipientConfig] = Field(default_factory=list)
    check_interval: Optional[Union[str, IntervalConfig]] = None


class PaymentGeneratorConfig(BaseModel):
    type: Literal["recurring"]
    options: RecurringPaymentOptions


class RecipientsFile(BaseModel):
    payment_generators: List[PaymentGeneratorConfig]


class RecurringPlan(BaseModel):
    """Recipients to pay and the cadence at which to check them."""

    recipients: List[RecipientConfig]
    check_interval: Union[str, IntervalConfig]


def load_recurring_plan(
    path: Union[str, Path], default_interval: Union[str, IntervalConfig]
) -> RecurringPlan:
    """Load recipients from a JSON file.

    The file holds either a plain list of recipients or an object with
    `payment_generators` entries of type "recurring". Recipients from every
    generator are merged; the first generator interval found wins over
    `default_interval`.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read recipients file {path}: {e}") from e
    except ValueError as e:
        raise ConfigurationError(f"Recipients file {path} is not JSON: {e}") from e

    try:
        if isinstance(raw, list):
            recipients = [RecipientConfig.model_validate(item) for item in raw]
            return RecurringPlan(recipients=recipients, check_interval=default_interval)

        parsed = RecipientsFile.model_validate(raw)
    except ModelValidationError as e:
        raise ConfigurationError(f"Invalid recipients file {path}: {e}") from e

    recipients = []
    interval: Optional[Union[str, IntervalConfig]] = None
    for generator in parsed.payment_generators:
        recipients.extend(generator.options.recurring_payments)
        if interval is None:
            interval = generator.options.check_interval
    return RecurringPlan(
        recipients=recipients,
        check_interval=interval if interval is not None else default_interval,
    )
