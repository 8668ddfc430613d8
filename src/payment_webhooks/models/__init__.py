"""SQLAlchemy models."""

from payment_webhooks.models.base import Base, TimestampMixin, UpdatedAtMixin
from payment_webhooks.models.gateway import (
    ChannelSettingRecord,
    GatewayRefundRecord,
    GatewayTransactionRecord,
    PaymentMethodConfigurationRecord,
)
from payment_webhooks.models.order import (
    Order,
    OrderDelivery,
    OrderTransaction,
    OrderTransactionStateHistory,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "ChannelSettingRecord",
    "GatewayRefundRecord",
    "GatewayTransactionRecord",
    "PaymentMethodConfigurationRecord",
    "Order",
    "OrderDelivery",
    "OrderTransaction",
    "OrderTransactionStateHistory",
]
