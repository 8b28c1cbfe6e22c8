"""Tests for the LND REST driver using httpx.MockTransport."""

from __future__ import annotations

import base64
import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from lnautopay.application.payments.pipeline import PaymentPipeline
from lnautopay.domain.errors import ConnectionNotReadyError, DecodeError, SendError
from lnautopay.domain.payments.entities import (
    DecodedInvoice,
    PendingPayment,
    RecipientConfig,
)
from lnautopay.infrastructure.lightning.lnd_client import LndRestClient
from lnautopay.infrastructure.lightning.lnd_connection import (
    ConnectionState,
    LndConnection,
    LndConnectionConfig,
)
from tests.fixtures import (
    ALICE,
    DAY_MS,
    InMemoryPaymentRecordRepository,
    StaticInvoiceSource,
)

REST_URL = "https://lnd.local:8080"
PREIMAGE = bytes(range(32))

Handler = Callable[[httpx.Request], httpx.Response]


class FakeLnd:
    """Minimal LND REST node: routes by (method, path)."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Handler] = {
            ("GET", "/v1/getinfo"): lambda r: httpx.Response(
                200, json={"identity_pubkey": "03" + "ee" * 32}
            ),
        }
        self.slept: List[float] = []

    def route(self, method: str, path: str, response: Any) -> None:
        if isinstance(response, httpx.Response):
            self.routes[(method, path)] = lambda r: httpx.Response(
                response.status_code,
                headers=response.headers,
                content=response.content,
            )
        else:
            self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "not found"})
        return route(request)

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    async def sleep(self, delay: float) -> None:
        self.slept.append(delay)


@pytest.fixture
def lnd() -> FakeLnd:
    return FakeLnd()


def _connection(lnd: FakeLnd, **config: Any) -> LndConnection:
    return LndConnection(
        LndConnectionConfig(rest_url=REST_URL, macaroon_hex="0201abcd", **config),
        transport=httpx.MockTransport(lnd.handler),
        sleep=lnd.sleep,
    )


def _payment(amount=1000, custom_amount=None) -> PendingPayment:
    return PendingPayment(
        invoice="lnbc10u1pxyz",
        decoded_invoice=DecodedInvoice(
            destination=ALICE, payment_hash="ab" * 32, amount=amount
        ),
        custom_amount=custom_amount,
    )


class TestLndConnection:
    @pytest.mark.asyncio
    async def test_initialize_reaches_ready_and_sends_macaroon(
        self, lnd: FakeLnd
    ) -> None:
        connection = _connection(lnd)

        await connection.initialize()

        assert connection.state is ConnectionState.READY
        assert lnd.paths() == ["GET /v1/getinfo"]
        assert lnd.requests[0].headers["Grpc-Metadata-macaroon"] == "0201abcd"
        await connection.aclose()
        assert connection.state is ConnectionState.NEW

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, lnd: FakeLnd) -> None:
        connection = _connection(lnd)

        await connection.initialize()
        await connection.initialize()

        assert lnd.paths() == ["GET /v1/getinfo"]
        await connection.aclose()

    @pytest.mark.asyncio
    async def test_wallet_is_unlocked_with_base64_password(self, lnd: FakeLnd) -> None:
        lnd.route("POST", "/v1/unlockwallet", httpx.Response(200, json={}))
        connection = _connection(lnd, wallet_password="hunter2")

        await connection.initialize()

        assert lnd.paths() == ["POST /v1/unlockwallet", "GET /v1/getinfo"]
        body = json.loads(lnd.requests[0].content)
        assert base64.b64decode(body["wallet_password"]) == b"hunter2"
        await connection.aclose()

    @pytest.mark.asyncio
    async def test_already_unlocked_wallet_is_accepted(self, lnd: FakeLnd) -> None:
        lnd.route(
            "POST",
            "/v1/unlockwallet",
            httpx.Response(500, json={"message": "wallet already unlocked"}),
        )
        connection = _connection(lnd, wallet_password="hunter2")

        await connection.initialize()

        assert connection.is_ready
        await connection.aclose()

    @pytest.mark.asyncio
    async def test_retries_then_gives_up(self, lnd: FakeLnd) -> None:
        lnd.route("GET", "/v1/getinfo", httpx.Response(503, text="starting"))
        connection = _connection(lnd, init_attempts=3, init_backoff_seconds=0.5)

        with pytest.raises(ConnectionNotReadyError, match="unlocked"):
            await connection.initialize()

        assert lnd.paths() == ["GET /v1/getinfo"] * 3
        assert lnd.slept == [0.5, 1.0]
        assert connection.state is ConnectionState.UNLOCKED
        await connection.aclose()

    @pytest.mark.asyncio
    async def test_recovers_when_node_becomes_ready(self, lnd: FakeLnd) -> None:
        responses = iter(
            [httpx.Response(503), httpx.Response(200, json={"identity_pubkey": "x"})]
        )
        lnd.route("GET", "/v1/getinfo", lambda r: next(responses))
        connection = _connection(lnd)

        await connection.initialize()

        assert connection.is_ready
        assert len(lnd.slept) == 1
        await connection.aclose()


class TestLndRestClient:
    @pytest.mark.asyncio
    async def test_decode_invoice(self, lnd: FakeLnd) -> None:
        lnd.route(
            "GET",
            "/v1/payreq/lnbc10u1pxyz",
            httpx.Response(
                200,
                json={
                    "destination": ALICE,
                    "payment_hash": "ab" * 32,
                    "num_satoshis": "1000",
                    "timestamp": "1700000000",
                    "expiry": "3600",
                    "cltv_expiry": "40",
                    "description": "rent",
                    "fallback_addr": "",
                },
            ),
        )
        client = LndRestClient(_connection(lnd))

        decoded = await client.decode_invoice("lnbc10u1pxyz")

        assert decoded.destination == ALICE
        assert decoded.amount == 1000
        assert decoded.timestamp == 1_700_000_000
        assert decoded.expiry == 40
        assert decoded.description == "rent"
        assert decoded.fallback_address is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_decode_zero_amount_invoice(self, lnd: FakeLnd) -> None:
        lnd.route(
            "GET",
            "/v1/payreq/lnbc1pxyz",
            httpx.Response(
                200,
                json={"destination": ALICE, "payment_hash": "ab", "num_satoshis": "0"},
            ),
        )
        client = LndRestClient(_connection(lnd))

        assert (await client.decode_invoice("lnbc1pxyz")).amount is None
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(400, json={"message": "invalid index"}),
            httpx.Response(200, json={"payment_hash": "ab"}),
            httpx.Response(200, text="<html>"),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
    )
    async def test_decode_failures_raise_decode_error(
        self, lnd: FakeLnd, response: httpx.Response
    ) -> None:
        lnd.route("GET", "/v1/payreq/garbage", response)
        client = LndRestClient(_connection(lnd))

        with pytest.raises(DecodeError):
            await client.decode_invoice("garbage")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_decode_when_node_never_ready(self, lnd: FakeLnd) -> None:
        lnd.route("GET", "/v1/getinfo", httpx.Response(503))
        client = LndRestClient(_connection(lnd, init_attempts=1))

        with pytest.raises(DecodeError, match="not ready"):
            await client.decode_invoice("lnbc1")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_success(self, lnd: FakeLnd) -> None:
        lnd.route(
            "POST",
            "/v1/channels/transactions",
            httpx.Response(
                200,
                json={
                    "payment_error": "",
                    "payment_preimage": base64.b64encode(PREIMAGE).decode(),
                },
            ),
        )
        client = LndRestClient(_connection(lnd))

        result = await client.send(_payment())

        assert result.success
        assert result.preimage == PREIMAGE.hex()
        assert result.amount == 1000
        assert result.destination == ALICE
        body = json.loads(lnd.requests[-1].content)
        assert body == {"payment_request": "lnbc10u1pxyz"}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_custom_amount(self, lnd: FakeLnd) -> None:
        lnd.route(
            "POST",
            "/v1/channels/transactions",
            httpx.Response(
                200, json={"payment_preimage": base64.b64encode(PREIMAGE).decode()}
            ),
        )
        client = LndRestClient(_connection(lnd))

        result = await client.send(_payment(amount=None, custom_amount=2500))

        body = json.loads(lnd.requests[-1].content)
        assert body["amt"] == "2500"
        assert result.amount == 2500
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_payment_error_is_unsuccessful_result(
        self, lnd: FakeLnd
    ) -> None:
        lnd.route(
            "POST",
            "/v1/channels/transactions",
            httpx.Response(200, json={"payment_error": "unable to find a path"}),
        )
        client = LndRestClient(_connection(lnd))

        result = await client.send(_payment())

        assert not result.success
        assert result.preimage is None
        assert json.loads(result.error)["message"] == "unable to find a path"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_http_failure_raises_send_error(self, lnd: FakeLnd) -> None:
        lnd.route(
            "POST",
            "/v1/channels/transactions",
            httpx.Response(500, json={"message": "internal"}),
        )
        client = LndRestClient(_connection(lnd))

        with pytest.raises(SendError, match="500"):
            await client.send(_payment())
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_non_object_body_raises_send_error(self, lnd: FakeLnd) -> None:
        lnd.route(
            "POST", "/v1/channels/transactions", httpx.Response(200, json=["ok"])
        )
        client = LndRestClient(_connection(lnd))

        with pytest.raises(SendError, match="malformed"):
            await client.send(_payment())
        await client.aclose()

    @pytest.mark.asyncio
    async def test_settled_payment_keeps_undecodable_preimage(
        self, lnd: FakeLnd
    ) -> None:
        lnd.route(
            "POST",
            "/v1/channels/transactions",
            httpx.Response(
                200, json={"payment_error": "", "payment_preimage": "not-base64!!"}
            ),
        )
        client = LndRestClient(_connection(lnd))

        result = await client.send(_payment())

        assert result.success
        assert result.preimage == "not-base64!!"
        await client.aclose()


@pytest.mark.asyncio
async def test_pipeline_records_payment_with_odd_preimage(lnd: FakeLnd) -> None:
    """A settled payment is recorded once even if LND's preimage is malformed."""
    lnd.route(
        "GET",
        "/v1/payreq/lnbc10u1pxyz",
        httpx.Response(
            200,
            json={"destination": ALICE, "payment_hash": "ab", "num_satoshis": "1000"},
        ),
    )
    lnd.route(
        "POST",
        "/v1/channels/transactions",
        httpx.Response(
            200, json={"payment_error": "", "payment_preimage": "not-base64!!"}
        ),
    )
    recipient = RecipientConfig(
        destination=ALICE,
        invoice_source_url="https://alice.example.com/invoice",
        period=DAY_MS,
    )
    invoice_source = StaticInvoiceSource()
    invoice_source.set_response(recipient.invoice_source_url, "lnbc10u1pxyz")
    record_repository = InMemoryPaymentRecordRepository()
    client = LndRestClient(_connection(lnd))
    pipeline = PaymentPipeline(client, invoice_source, record_repository)

    record = await pipeline.run(recipient)

    assert lnd.paths().count("POST /v1/channels/transactions") == 1
    assert record is not None and record.success
    assert record_repository.saved == [record]
    await client.aclose()
