"""Pure validation functions for invoices obtained from recipients.

These functions contain business logic validation rules that can be tested
in isolation without dependencies on the payment network or the store.
"""

from __future__ import annotations

from typing import Optional

from ...domain.errors import (
    AmountMismatchError,
    DestinationMismatchError,
    MissingAmountError,
)
from ...domain.payments.entities import (
    DecodedInvoice,
    PendingPayment,
    RecipientConfig,
)


def validate_invoice(
    decoded: DecodedInvoice, recipient: RecipientConfig
) -> Optional[int]:
    """Check a decoded invoice against the recipient configuration. Pure function.

    Args:
        decoded: The decoded invoice returned by the payment network
        recipient: The configured recurring payment

    Returns:
        The amount to pay: the invoice amount when present, otherwise the
        recipient's expected amount (None if neither is known).

    Raises:
        DestinationMismatchError: If the invoice pays another node.
        AmountMismatchError: If both amounts are known and differ.
    """
    if decoded.destination != recipient.destination:
        raise DestinationMismatchError(recipient.destination, decoded.destination)

    if decoded.amount is None:
        return recipient.expected_amount

    if (
        recipient.expected_amount is not None
        and decoded.amount != recipient.expected_amount
    ):
        raise AmountMismatchError(recipient.expected_amount, decoded.amount)

    return decoded.amount


def build_pending_payment(
    invoice: str, decoded: DecodedInvoice, recipient: RecipientConfig
) -> PendingPayment:
    """Validate the invoice and wrap it into a PendingPayment.

    `custom_amount` is only set when the invoice leaves the amount to the payer.

    Raises:
        ValidationError: On mismatch, or when no amount is known at all.
    """
    amount = validate_invoice(decoded, recipient)
    if amount is None:
        raise MissingAmountError(
            f"Invoice for {recipient.destination} has no amount and none is configured"
        )

    custom_amount = amount if decoded.amount is None else None
    return PendingPayment(
        invoice=invoice, decoded_invoice=decoded, custom_amount=custom_amount
    )
