"""HTTP client for the payment gateway REST API."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Any, Callable, cast

import httpx

from payment_webhooks.config import ChannelSettings
from payment_webhooks.gateway.base import (
    GatewayApiError,
    GatewayPaymentMethodConfiguration,
    GatewayRefund,
    GatewayTransaction,
    GatewayTransactionInvoice,
)

logger = logging.getLogger(__name__)

MAC_VERSION = "1"


class HttpGatewayClient:
    """Gateway client authenticating every request with a MAC signature.

    The httpx client is shared across requests and owned by the application;
    this class only holds the per-channel credentials.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        user_id: int,
        api_secret: str,
        base_url: str,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        if not api_secret:
            raise ValueError("api_secret is required")
        try:
            self._secret = base64.b64decode(api_secret, validate=True)
        except binascii.Error as e:
            raise ValueError("api_secret must be base64 encoded") from e
        self._http = http
        self.user_id = user_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._clock = clock

    def sign(self, method: str, path: str, timestamp: int) -> str:
        """Compute the x-mac-value header for a request path (with query)."""
        secured = "|".join(
            [MAC_VERSION, str(self.user_id), str(timestamp), method.upper(), path]
        )
        digest = hmac.new(self._secret, secured.encode("utf-8"), hashlib.sha512).digest()
        return base64.b64encode(digest).decode("ascii")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any],
        json: Any = None,
    ) -> Any:
        request = self._http.build_request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json,
            timeout=self.timeout,
        )
        timestamp = int(self._clock())
        request.headers.update(
            {
                "x-mac-version": MAC_VERSION,
                "x-mac-userid": str(self.user_id),
                "x-mac-timestamp": str(timestamp),
                "x-mac-value": self.sign(
                    method, request.url.raw_path.decode("ascii"), timestamp
                ),
                "Accept": "application/json",
            }
        )

        try:
            response = await self._http.send(request)
        except httpx.TimeoutException as e:
            raise GatewayApiError(f"Gateway request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise GatewayApiError(f"Gateway request failed: {method} {path}: {e}") from e

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"body": response.text[:500]}
            message = payload.get("message") if isinstance(payload, dict) else None
            raise GatewayApiError(
                message or f"Gateway returned HTTP {response.status_code} for {path}",
                status_code=response.status_code,
                payload=payload if isinstance(payload, dict) else {"body": payload},
            )

        try:
            return response.json()
        except ValueError as e:
            raise GatewayApiError(
                f"Gateway returned invalid JSON for {path}",
                status_code=response.status_code,
            ) from e

    async def _read(self, path: str, space_id: int, entity_id: int) -> dict[str, Any]:
        data = await self._request("GET", path, params={"spaceId": space_id, "id": entity_id})
        if not isinstance(data, dict):
            raise GatewayApiError(f"Unexpected response shape for {path}")
        return data

    async def read_transaction(self, space_id: int, entity_id: int) -> GatewayTransaction:
        data = await self._read("/api/transaction/read", space_id, entity_id)
        return _parse(GatewayTransaction.from_payload, data, "transaction")

    async def read_refund(self, space_id: int, entity_id: int) -> GatewayRefund:
        data = await self._read("/api/refund/read", space_id, entity_id)
        return _parse(GatewayRefund.from_payload, data, "refund")

    async def read_transaction_invoice(
        self, space_id: int, entity_id: int
    ) -> GatewayTransactionInvoice:
        data = await self._read("/api/transaction-invoice/read", space_id, entity_id)
        return _parse(GatewayTransactionInvoice.from_payload, data, "transaction invoice")

    async def search_payment_method_configurations(
        self, space_id: int
    ) -> list[GatewayPaymentMethodConfiguration]:
        data = await self._request(
            "POST",
            "/api/payment-method-configuration/search",
            params={"spaceId": space_id},
            json={},
        )
        if not isinstance(data, list):
            raise GatewayApiError("Unexpected response shape for payment method search")
        return [
            _parse(GatewayPaymentMethodConfiguration.from_payload, item, "payment method")
            for item in data
        ]


def _parse(factory: Callable[[dict[str, Any]], Any], data: dict[str, Any], kind: str) -> Any:
    try:
        return factory(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Malformed gateway %s payload: %s", kind, e)
        raise GatewayApiError(f"Malformed gateway {kind} payload: {e}") from e


class HttpGatewayClientFactory:
    """Builds an HttpGatewayClient for a channel's credentials.

    One instance lives on the application and shares its httpx client.
    """

    def __init__(self, http: httpx.AsyncClient, timeout: float = 30.0):
        self.http = http
        self.timeout = timeout

    def __call__(self, channel: ChannelSettings) -> HttpGatewayClient:
        channel.require_credentials()
        return HttpGatewayClient(
            self.http,
            user_id=cast(int, channel.user_id),
            api_secret=channel.api_secret,
            base_url=channel.base_url,
            timeout=self.timeout,
        )
