"""Protocol and snapshot types for the payment gateway.

The gateway is the source of truth for transaction, refund and invoice state.
Snapshots are parsed from the gateway's JSON representation and are only kept
for one webhook delivery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Protocol
from uuid import UUID

METADATA_ORDER_ID = "orderId"
METADATA_ORDER_TRANSACTION_ID = "orderTransactionId"


class TransactionState(str, Enum):
    """Gateway transaction states."""

    CREATE = "CREATE"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"
    AUTHORIZED = "AUTHORIZED"
    VOIDED = "VOIDED"
    COMPLETED = "COMPLETED"
    FULFILL = "FULFILL"
    DECLINE = "DECLINE"


class RefundState(str, Enum):
    """Gateway refund states."""

    CREATE = "CREATE"
    SCHEDULED = "SCHEDULED"
    PENDING = "PENDING"
    MANUAL_CHECK = "MANUAL_CHECK"
    FAILED = "FAILED"
    SUCCESSFUL = "SUCCESSFUL"


class TransactionInvoiceState(str, Enum):
    """Gateway transaction invoice states."""

    CREATE = "CREATE"
    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    CANCELED = "CANCELED"
    PAID = "PAID"
    DERECOGNIZED = "DERECOGNIZED"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class GatewayApiError(Exception):
    """Raised when a gateway call fails (transport, timeout or non-2xx)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


def _decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


@dataclass(frozen=True)
class OrderReference:
    """Local identifiers the shop attached to the gateway transaction."""

    order_id: UUID
    order_transaction_id: UUID


def parse_order_reference(metadata: Mapping[str, Any] | None) -> OrderReference | None:
    """Read the order identifiers echoed back in gateway metadata.

    Returns None when either identifier is missing or is not a UUID.
    """
    if not metadata:
        return None
    raw_order_id = metadata.get(METADATA_ORDER_ID)
    raw_transaction_id = metadata.get(METADATA_ORDER_TRANSACTION_ID)
    if not raw_order_id or not raw_transaction_id:
        return None
    try:
        return OrderReference(
            order_id=UUID(str(raw_order_id)),
            order_transaction_id=UUID(str(raw_transaction_id)),
        )
    except ValueError:
        return None


@dataclass(frozen=True)
class GatewayTransaction:
    """Snapshot of a gateway transaction."""

    id: int
    space_id: int
    state: str
    amount: Decimal
    currency: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> GatewayTransaction:
        return cls(
            id=int(data["id"]),
            space_id=int(data.get("linkedSpaceId") or data.get("spaceId") or 0),
            state=str(data.get("state", "")),
            amount=_decimal(data.get("authorizationAmount")),
            currency=data.get("currency"),
            metadata=dict(data.get("metaData") or {}),
            raw=data,
        )

    @property
    def order_reference(self) -> OrderReference | None:
        return parse_order_reference(self.metadata)


@dataclass(frozen=True)
class GatewayRefund:
    """Snapshot of a gateway refund with its parent transaction."""

    id: int
    state: str
    amount: Decimal
    transaction: GatewayTransaction
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> GatewayRefund:
        return cls(
            id=int(data["id"]),
            state=str(data.get("state", "")),
            amount=_decimal(data.get("amount")),
            transaction=GatewayTransaction.from_payload(data.get("transaction") or {"id": 0}),
            raw=data,
        )

    @property
    def order_reference(self) -> OrderReference | None:
        return self.transaction.order_reference


@dataclass(frozen=True)
class GatewayTransactionInvoice:
    """Snapshot of a transaction invoice.

    The parent transaction is nested as completion -> lineItemVersion -> transaction.
    """

    id: int
    state: str
    amount: Decimal
    transaction: GatewayTransaction | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> GatewayTransactionInvoice:
        completion = data.get("completion") or {}
        line_item_version = completion.get("lineItemVersion") or {}
        transaction_data = line_item_version.get("transaction")
        return cls(
            id=int(data["id"]),
            state=str(data.get("state", "")),
            amount=_decimal(data.get("amount")),
            transaction=(
                GatewayTransaction.from_payload(transaction_data)
                if transaction_data
                else None
            ),
            raw=data,
        )

    @property
    def order_reference(self) -> OrderReference | None:
        if self.transaction is None:
            return None
        return self.transaction.order_reference


@dataclass(frozen=True)
class GatewayPaymentMethodConfiguration:
    """Payment method configured in a gateway space."""

    id: int
    space_id: int
    name: str
    state: str
    sort_order: int = 0
    description: str | None = None
    image_url: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> GatewayPaymentMethodConfiguration:
        description = data.get("resolvedDescription") or data.get("description")
        if isinstance(description, dict):
            description = next(iter(description.values()), None)
        return cls(
            id=int(data["id"]),
            space_id=int(data.get("linkedSpaceId") or data.get("spaceId") or 0),
            name=str(data.get("name", "")),
            state=str(data.get("state", "")),
            sort_order=int(data.get("sortOrder") or 0),
            description=description,
            image_url=data.get("resolvedImageUrl") or data.get("imageResourcePath"),
        )

    @property
    def is_active(self) -> bool:
        return self.state == "ACTIVE"


class GatewayClient(Protocol):
    """Read-only operations the webhook core needs from the gateway.

    Every call may raise GatewayApiError.
    """

    async def read_transaction(self, space_id: int, entity_id: int) -> GatewayTransaction:
        """Fetch a transaction by id."""
        ...

    async def read_refund(self, space_id: int, entity_id: int) -> GatewayRefund:
        """Fetch a refund by id."""
        ...

    async def read_transaction_invoice(
        self, space_id: int, entity_id: int
    ) -> GatewayTransactionInvoice:
        """Fetch a transaction invoice by id."""
        ...

    async def search_payment_method_configurations(
        self, space_id: int
    ) -> list[GatewayPaymentMethodConfiguration]:
        """List the payment method configurations of a space."""
        ...
