"""Domain-specific exceptions."""

from __future__ import annotations

import json
from typing import Optional


class LnAutopayError(Exception):
    """Base class for every error raised by lnautopay."""

    def to_payload(self) -> str:
        """Serialize the error for the `error` column of a payment record."""
        return json.dumps({"type": type(self).__name__, "message": str(self)})


class ConfigurationError(LnAutopayError):
    """Raised when recipients, schedules or schemas are malformed. Fatal at startup."""


# Validation


class ValidationError(LnAutopayError):
    """Raised when a decoded invoice does not match the recipient's expectations."""


class DestinationMismatchError(ValidationError):
    """Raised when the invoice pays a different node than the configured one."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Invoice's destination is different: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class AmountMismatchError(ValidationError):
    """Raised when the invoice amount differs from the configured amount."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Invoice's amount is different: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class MissingAmountError(ValidationError):
    """Raised when neither the invoice nor the recipient provides an amount."""


# Network


class NetworkError(LnAutopayError):
    """Raised on invoice-source or payment-network failures."""


class InvoiceFetchError(NetworkError):
    """Raised when a fresh invoice cannot be obtained from an invoice source."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not fetch invoice from {url}: {reason}")
        self.url = url


class DecodeError(NetworkError):
    """Raised when the payment network cannot decode an invoice."""


class SendError(NetworkError):
    """Raised when a payment could not be submitted to the payment network."""


class ConnectionNotReadyError(NetworkError):
    """Raised when the payment-network connection could not be initialized."""


# Persistence


class PersistenceError(LnAutopayError):
    """Raised when the record store fails."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class WriteError(PersistenceError):
    """Raised when a record cannot be inserted."""


class QueryError(PersistenceError):
    """Raised when the record store cannot be queried."""
