"""Protocol interfaces for the payment network and invoice sources.

These protocols define the contracts the recurring payment pipeline depends on.
They enable dependency injection and make the pipeline testable with fakes.
"""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ..payments.entities import DecodedInvoice, PaymentResult, PendingPayment


class PaymentNetworkClientProtocol(Protocol):
    """Protocol defining the payment-network capability.

    Implementations should provide async methods for:
    - Decoding an invoice string into structured fields
    - Sending a validated payment and reporting its outcome
    """

    async def decode_invoice(self, invoice: str) -> "DecodedInvoice":
        """Decode an invoice.

        Args:
            invoice: Encoded payment request

        Returns:
            Decoded invoice fields

        Raises:
            DecodeError: If the invoice is malformed or cannot be decoded
        """
        ...

    async def send(self, payment: "PendingPayment") -> "PaymentResult":
        """Send a payment.

        Ordinary payment failures (no route, insufficient balance) are reported
        with `success=False`; transport or protocol failures raise SendError.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class InvoiceSourceProtocol(Protocol):
    """Protocol for endpoints that hand out fresh invoices."""

    async def fetch_invoice(self, url: str) -> str:
        """Request a fresh invoice from `url`. Raises InvoiceFetchError."""
        ...

    async def aclose(self) -> None:
        ...
