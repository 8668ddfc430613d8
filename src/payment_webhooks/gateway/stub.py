"""In-memory gateway for local development and testing.

Entities are registered with add_* and served back by the read calls, the way
the real gateway would return them for a webhook's (space_id, entity_id).
"""

from __future__ import annotations

from payment_webhooks.gateway.base import (
    GatewayApiError,
    GatewayPaymentMethodConfiguration,
    GatewayRefund,
    GatewayTransaction,
    GatewayTransactionInvoice,
)


class StubGatewayClient:
    """Stub gateway client.

    Set ``fail_with`` to make every call raise, simulating an outage.
    """

    def __init__(self) -> None:
        self._transactions: dict[tuple[int, int], GatewayTransaction] = {}
        self._refunds: dict[tuple[int, int], GatewayRefund] = {}
        self._invoices: dict[tuple[int, int], GatewayTransactionInvoice] = {}
        self._payment_methods: dict[int, list[GatewayPaymentMethodConfiguration]] = {}
        self.fail_with: GatewayApiError | None = None
        self.calls: list[tuple[str, int, int | None]] = []

    def add_transaction(self, space_id: int, transaction: GatewayTransaction) -> None:
        self._transactions[(space_id, transaction.id)] = transaction

    def add_refund(self, space_id: int, refund: GatewayRefund) -> None:
        self._refunds[(space_id, refund.id)] = refund

    def add_transaction_invoice(
        self, space_id: int, invoice: GatewayTransactionInvoice
    ) -> None:
        self._invoices[(space_id, invoice.id)] = invoice

    def set_payment_methods(
        self, space_id: int, configurations: list[GatewayPaymentMethodConfiguration]
    ) -> None:
        self._payment_methods[space_id] = list(configurations)

    def _check(self, call: str, space_id: int, entity_id: int | None) -> None:
        self.calls.append((call, space_id, entity_id))
        if self.fail_with is not None:
            raise self.fail_with

    async def read_transaction(self, space_id: int, entity_id: int) -> GatewayTransaction:
        self._check("read_transaction", space_id, entity_id)
        try:
            return self._transactions[(space_id, entity_id)]
        except KeyError:
            raise GatewayApiError(f"Transaction {entity_id} not found", status_code=404)

    async def read_refund(self, space_id: int, entity_id: int) -> GatewayRefund:
        self._check("read_refund", space_id, entity_id)
        try:
            return self._refunds[(space_id, entity_id)]
        except KeyError:
            raise GatewayApiError(f"Refund {entity_id} not found", status_code=404)

    async def read_transaction_invoice(
        self, space_id: int, entity_id: int
    ) -> GatewayTransactionInvoice:
        self._check("read_transaction_invoice", space_id, entity_id)
        try:
            return self._invoices[(space_id, entity_id)]
        except KeyError:
            raise GatewayApiError(f"Transaction invoice {entity_id} not found", status_code=404)

    async def search_payment_method_configurations(
        self, space_id: int
    ) -> list[GatewayPaymentMethodConfiguration]:
        self._check("search_payment_method_configurations", space_id, None)
        return list(self._payment_methods.get(space_id, []))
