"""Tests for the gateway HTTP client.

Requests are answered by httpx.MockTransport, so nothing leaves the process.
"""

import base64
import hashlib
import hmac
import json

import httpx
import pytest

from payment_webhooks.config import ChannelSettings, SettingsError
from payment_webhooks.gateway.base import GatewayApiError
from payment_webhooks.gateway.http_client import HttpGatewayClient, HttpGatewayClientFactory

SECRET = base64.b64encode(b"top-secret").decode("ascii")
NOW = 1_700_000_000


def make_client(handler) -> HttpGatewayClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpGatewayClient(
        http,
        user_id=512,
        api_secret=SECRET,
        base_url="https://gateway.test/",
        clock=lambda: NOW,
    )


@pytest.mark.asyncio
class TestSigning:
    """Test MAC authentication headers."""

    async def test_request_carries_mac_headers(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": 1, "state": "FULFILL"})

        client = make_client(handler)
        await client.read_transaction(4711, 1)

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/api/transaction/read"
        assert request.url.params["spaceId"] == "4711"
        assert request.url.params["id"] == "1"
        assert request.headers["x-mac-version"] == "1"
        assert request.headers["x-mac-userid"] == "512"
        assert request.headers["x-mac-timestamp"] == str(NOW)

        secured = f"1|512|{NOW}|GET|/api/transaction/read?spaceId=4711&id=1"
        expected = base64.b64encode(
            hmac.new(b"top-secret", secured.encode(), hashlib.sha512).digest()
        ).decode()
        assert request.headers["x-mac-value"] == expected

    async def test_sign_is_deterministic(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        assert client.sign("get", "/x", 1) == client.sign("GET", "/x", 1)
        assert client.sign("GET", "/x", 1) != client.sign("GET", "/x", 2)


@pytest.mark.asyncio
class TestReads:
    """Test entity reads and response parsing."""

    async def test_read_refund(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/refund/read"
            return httpx.Response(
                200,
                json={"id": 9, "state": "SUCCESSFUL", "amount": 40, "transaction": {"id": 3}},
            )

        refund = await make_client(handler).read_refund(4711, 9)
        assert refund.id == 9
        assert refund.transaction.id == 3

    async def test_read_transaction_invoice(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/transaction-invoice/read"
            return httpx.Response(200, json={"id": 77, "state": "PAID"})

        invoice = await make_client(handler).read_transaction_invoice(4711, 77)
        assert invoice.state == "PAID"

    async def test_search_payment_method_configurations(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/api/payment-method-configuration/search"
            assert json.loads(request.content) == {}
            return httpx.Response(
                200,
                json=[
                    {"id": 1, "name": "Card", "state": "ACTIVE"},
                    {"id": 2, "name": "TWINT", "state": "INACTIVE"},
                ],
            )

        configurations = await make_client(handler).search_payment_method_configurations(4711)
        assert [c.name for c in configurations] == ["Card", "TWINT"]


@pytest.mark.asyncio
class TestErrors:
    """Test mapping of transport and HTTP failures to GatewayApiError."""

    async def test_http_error_uses_gateway_message(self):
        client = make_client(
            lambda request: httpx.Response(404, json={"message": "Entity not found"})
        )
        with pytest.raises(GatewayApiError) as exc_info:
            await client.read_transaction(4711, 1)

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Entity not found"

    async def test_http_error_without_json_body(self):
        client = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(GatewayApiError) as exc_info:
            await client.read_refund(4711, 1)

        assert exc_info.value.status_code == 502
        assert exc_info.value.payload == {"body": "Bad Gateway"}

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayApiError, match="timed out"):
            await make_client(handler).read_transaction(4711, 1)

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GatewayApiError, match="failed"):
            await make_client(handler).read_transaction(4711, 1)

    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(GatewayApiError, match="invalid JSON"):
            await client.read_transaction(4711, 1)

    async def test_malformed_entity(self):
        client = make_client(lambda request: httpx.Response(200, json={"state": "FULFILL"}))
        with pytest.raises(GatewayApiError, match="Malformed"):
            await client.read_transaction(4711, 1)

    async def test_search_expects_list(self):
        client = make_client(lambda request: httpx.Response(200, json={"items": []}))
        with pytest.raises(GatewayApiError):
            await client.search_payment_method_configurations(4711)


class TestFactory:
    """Test building clients from channel settings."""

    def test_builds_client_for_channel(self):
        factory = HttpGatewayClientFactory(httpx.AsyncClient(), timeout=5.0)
        client = factory(
            ChannelSettings(
                channel_id="storefront",
                user_id=512,
                api_secret=SECRET,
                base_url="https://gateway.test",
            )
        )
        assert client.user_id == 512
        assert client.timeout == 5.0

    def test_missing_credentials(self):
        factory = HttpGatewayClientFactory(httpx.AsyncClient())
        with pytest.raises(SettingsError):
            factory(ChannelSettings(channel_id="storefront"))

    def test_user_id_without_secret(self):
        factory = HttpGatewayClientFactory(httpx.AsyncClient())
        with pytest.raises(SettingsError):
            factory(ChannelSettings(channel_id="storefront", user_id=512))

    def test_secret_without_user_id(self):
        factory = HttpGatewayClientFactory(httpx.AsyncClient())
        with pytest.raises(SettingsError):
            factory(ChannelSettings(channel_id="storefront", api_secret=SECRET))

    def test_secret_must_be_base64(self):
        with pytest.raises(ValueError):
            HttpGatewayClient(
                httpx.AsyncClient(),
                user_id=1,
                api_secret="not base64!",
                base_url="https://gateway.test",
            )
