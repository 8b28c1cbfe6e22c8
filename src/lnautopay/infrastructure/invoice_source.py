"""HTTP invoice source: asks a recipient's endpoint for a fresh invoice."""

from __future__ import annotations

from typing import Optional

import httpx

from ..domain.errors import InvoiceFetchError
from .http.http_client import AsyncHttpClient


class HttpInvoiceSource:
    """Fetches invoices with GET requests returning `{"invoice": "..."}`."""

    def __init__(
        self,
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(timeout=timeout, transport=transport)

    async def fetch_invoice(self, url: str) -> str:
        try:
            resp = await self._http.get(url)
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise InvoiceFetchError(url, f"HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise InvoiceFetchError(url, f"request failed: {e}") from e
        except ValueError as e:
            raise InvoiceFetchError(url, "response is not valid JSON") from e

        invoice = body.get("invoice") if isinstance(body, dict) else None
        if not isinstance(invoice, str) or not invoice:
            raise InvoiceFetchError(url, "response has no 'invoice' field")
        return invoice

    async def aclose(self) -> None:
        await self._http.aclose()
