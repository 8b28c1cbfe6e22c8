"""Payment network client for LND, using its REST API."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ...domain.errors import ConnectionNotReadyError, DecodeError, SendError
from ...domain.payments.entities import (
    DecodedInvoice,
    PaymentResult,
    PendingPayment,
    now_ms,
)
from .lnd_connection import LndConnection

logger = logging.getLogger(__name__)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _preimage_hex(value: Any) -> Optional[str]:
    """LND REST returns bytes fields base64-encoded; records store hex.

    The payment has already settled when this runs, so a preimage that is not
    valid base64 is kept as received.
    """
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True).hex()
    except (TypeError, ValueError):
        logger.warning("LND returned a preimage that is not base64: %r", value)
        return str(value)


class LndRestClient:
    """Decodes invoices and sends payments through an LndConnection."""

    def __init__(self, connection: LndConnection) -> None:
        self.connection = connection

    async def decode_invoice(self, invoice: str) -> DecodedInvoice:
        try:
            data = await self.connection.get(f"/v1/payreq/{quote(invoice, safe='')}")
        except ConnectionNotReadyError as e:
            raise DecodeError(f"Cannot decode invoice: {e}") from e
        except httpx.HTTPStatusError as e:
            raise DecodeError(
                f"LND rejected invoice ({e.response.status_code}): {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise DecodeError(f"Cannot reach LND to decode invoice: {e}") from e
        except ValueError as e:
            raise DecodeError("LND returned a malformed decodepayreq response") from e

        if not isinstance(data, dict):
            raise DecodeError("LND returned a malformed decodepayreq response")

        try:
            amount = _optional_int(data.get("num_satoshis"))
            return DecodedInvoice(
                destination=data["destination"],
                payment_hash=data["payment_hash"],
                # Zero means the payer chooses the amount
                amount=amount or None,
                timestamp=_optional_int(data.get("timestamp")),
                expiry=_optional_int(data.get("cltv_expiry")),
                description=data.get("description") or None,
                fallback_address=data.get("fallback_addr") or None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected decodepayreq response: {e}") from e

    async def send(self, payment: PendingPayment) -> PaymentResult:
        body: Dict[str, Any] = {"payment_request": payment.invoice}
        if payment.custom_amount is not None:
            body["amt"] = str(payment.custom_amount)

        try:
            data = await self.connection.post("/v1/channels/transactions", body)
        except ConnectionNotReadyError as e:
            raise SendError(f"Cannot send payment: {e}") from e
        except httpx.HTTPStatusError as e:
            raise SendError(
                f"LND rejected payment ({e.response.status_code}): {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise SendError(f"Cannot reach LND to send payment: {e}") from e
        except ValueError as e:
            raise SendError("LND returned a malformed payment response") from e

        if not isinstance(data, dict):
            raise SendError("LND returned a malformed payment response")

        destination = payment.decoded_invoice.destination
        payment_error = data.get("payment_error")
        if payment_error:
            logger.debug("LND payment_error for %s: %s", destination, payment_error)
            return PaymentResult(
                destination=destination,
                invoice=payment.invoice,
                timestamp=now_ms(),
                success=False,
                error=json.dumps({"type": "PaymentError", "message": payment_error}),
            )

        return PaymentResult(
            destination=destination,
            invoice=payment.invoice,
            preimage=_preimage_hex(data.get("payment_preimage")),
            amount=payment.amount_to_send,
            timestamp=now_ms(),
            success=True,
        )

    async def aclose(self) -> None:
        await self.connection.aclose()
