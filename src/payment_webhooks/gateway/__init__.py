"""Payment gateway client facade."""

from payment_webhooks.gateway.base import (
    METADATA_ORDER_ID,
    METADATA_ORDER_TRANSACTION_ID,
    GatewayApiError,
    GatewayClient,
    GatewayPaymentMethodConfiguration,
    GatewayRefund,
    GatewayTransaction,
    GatewayTransactionInvoice,
    OrderReference,
    RefundState,
    TransactionInvoiceState,
    TransactionState,
    parse_order_reference,
)
from payment_webhooks.gateway.http_client import HttpGatewayClient
from payment_webhooks.gateway.stub import StubGatewayClient

__all__ = [
    "METADATA_ORDER_ID",
    "METADATA_ORDER_TRANSACTION_ID",
    "GatewayApiError",
    "GatewayClient",
    "GatewayPaymentMethodConfiguration",
    "GatewayRefund",
    "GatewayTransaction",
    "GatewayTransactionInvoice",
    "OrderReference",
    "RefundState",
    "TransactionInvoiceState",
    "TransactionState",
    "parse_order_reference",
    "HttpGatewayClient",
    "StubGatewayClient",
]
