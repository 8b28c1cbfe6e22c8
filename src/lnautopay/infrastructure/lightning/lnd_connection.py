"""Explicit connection state for an LND node reached over its REST API."""

from __future__ import annotations

import asyncio
import base64
import enum
import logging
import ssl
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from ...domain.errors import ConfigurationError, ConnectionNotReadyError
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    NEW = "new"
    CONNECTED = "connected"
    UNLOCKED = "unlocked"
    READY = "ready"


class LndConnectionConfig(BaseModel):
    rest_url: str
    macaroon_hex: Optional[str] = None
    wallet_password: Optional[str] = None
    tls_cert_path: Optional[str] = None
    timeout: float = Field(30.0, gt=0)
    init_attempts: int = Field(3, ge=1)
    init_backoff_seconds: float = Field(1.0, ge=0)


class LndConnection:
    """Owns the HTTP session to LND and walks it through its start-up sequence.

    NEW -> CONNECTED (session with TLS and macaroon) -> UNLOCKED (wallet
    unlocked, or no password configured) -> READY (node answers getinfo).
    `initialize()` is idempotent, retries a bounded number of times and
    raises ConnectionNotReadyError when the node never becomes ready.
    """

    def __init__(
        self,
        config: LndConnectionConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.state = ConnectionState.NEW
        self._transport = transport
        self._sleep = sleep
        self._http: Optional[AsyncHttpClient] = None
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    async def initialize(self) -> None:
        async with self._lock:
            if self.is_ready:
                return

            last_error: Optional[Exception] = None
            for attempt in range(1, self.config.init_attempts + 1):
                try:
                    await self._advance()
                    logger.info("Connected to LND at %s", self.config.rest_url)
                    return
                except httpx.HTTPError as e:
                    last_error = e
                    logger.warning(
                        "LND initialization attempt %d/%d failed in state %s: %s",
                        attempt,
                        self.config.init_attempts,
                        self.state.value,
                        e,
                    )
                    if attempt < self.config.init_attempts:
                        await self._sleep(self.config.init_backoff_seconds * attempt)

            raise ConnectionNotReadyError(
                f"LND at {self.config.rest_url} not ready "
                f"(stuck in state {self.state.value}): {last_error}"
            )

    async def _advance(self) -> None:
        if self.state is ConnectionState.NEW:
            self._http = self._connect()
            self.state = ConnectionState.CONNECTED

        if self.state is ConnectionState.CONNECTED:
            if self.config.wallet_password:
                await self._unlock()
            self.state = ConnectionState.UNLOCKED

        if self.state is ConnectionState.UNLOCKED:
            await self._client.get("/v1/getinfo")
            self.state = ConnectionState.READY

    def _connect(self) -> AsyncHttpClient:
        headers: Dict[str, str] = {}
        if self.config.macaroon_hex:
            headers["Grpc-Metadata-macaroon"] = self.config.macaroon_hex

        verify: bool | ssl.SSLContext = True
        if self.config.tls_cert_path:
            # LND serves a self-signed certificate
            try:
                verify = ssl.create_default_context(cafile=self.config.tls_cert_path)
            except OSError as e:
                raise ConfigurationError(
                    f"Cannot load LND TLS certificate {self.config.tls_cert_path}: {e}"
                ) from e

        return AsyncHttpClient(
            self.config.rest_url,
            timeout=self.config.timeout,
            headers=headers,
            verify=verify,
            transport=self._transport,
        )

    async def _unlock(self) -> None:
        assert self.config.wallet_password is not None
        password_b64 = base64.b64encode(self.config.wallet_password.encode()).decode()
        try:
            await self._client.post(
                "/v1/unlockwallet", json={"wallet_password": password_b64}
            )
        except httpx.HTTPStatusError as e:
            if _is_already_unlocked(e.response):
                logger.info("LND wallet already unlocked")
                return
            raise

    @property
    def _client(self) -> AsyncHttpClient:
        if self._http is None:
            raise ConnectionNotReadyError("LND connection has not been opened")
        return self._http

    async def get(self, path: str) -> Dict[str, Any]:
        await self.initialize()
        resp = await self._client.get(path)
        return resp.json()

    async def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self.initialize()
        resp = await self._client.post(path, json=payload)
        return resp.json()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        self.state = ConnectionState.NEW


def _is_already_unlocked(response: httpx.Response) -> bool:
    # Once unlocked, LND stops serving the WalletUnlocker service
    if response.status_code in (404, 501):
        return True
    try:
        message = str(response.json().get("message", ""))
    except ValueError:
        message = response.text
    return "already unlocked" in message.lower()
