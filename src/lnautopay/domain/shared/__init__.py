"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .payment_network_protocol import (
    InvoiceSourceProtocol,
    PaymentNetworkClientProtocol,
)

__all__ = ["InvoiceSourceProtocol", "PaymentNetworkClientProtocol"]
