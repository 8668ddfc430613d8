"""Inbound webhook event."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ListenerEntity(str, Enum):
    """Entity types the gateway sends webhooks for."""

    PAYMENT_METHOD_CONFIGURATION = "PaymentMethodConfiguration"
    REFUND = "Refund"
    TRANSACTION = "Transaction"
    TRANSACTION_INVOICE = "TransactionInvoice"


@dataclass(frozen=True)
class WebhookEvent:
    """One webhook delivery, parsed from the request body."""

    listener_entity_technical_name: str
    space_id: int
    entity_id: int
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Echo form returned to the gateway and written to logs."""
        data = dict(self.raw)
        data.update(
            {
                "listenerEntityTechnicalName": self.listener_entity_technical_name,
                "spaceId": self.space_id,
                "entityId": self.entity_id,
            }
        )
        return data
