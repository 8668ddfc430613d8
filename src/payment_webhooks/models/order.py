"""Order models owned by the shop platform.

The webhook core only reads orders, requests transaction state changes and
stamps the gateway lock column. Everything else about an order belongs to the
surrounding platform and is not modelled here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payment_webhooks.models.base import Base, TimestampMixin, UpdatedAtMixin


class Order(Base, TimestampMixin):
    """A placed order."""

    __tablename__ = "shop_order"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)
    gateway_lock: Mapped[datetime | None] = mapped_column(nullable=True)
    confirmation_mail_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    transactions: Mapped[list[OrderTransaction]] = relationship(
        back_populates="order",
        order_by="OrderTransaction.created_at",
        cascade="all, delete-orphan",
    )
    deliveries: Mapped[list[OrderDelivery]] = relationship(
        back_populates="order",
        order_by="OrderDelivery.created_at",
        cascade="all, delete-orphan",
    )


class OrderTransaction(Base, TimestampMixin, UpdatedAtMixin):
    """Local payment lifecycle record for an order."""

    __tablename__ = "order_transaction"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("shop_order.id", ondelete="CASCADE"), nullable=False
    )
    state: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="transactions")
    history: Mapped[list[OrderTransactionStateHistory]] = relationship(
        back_populates="order_transaction",
        order_by="OrderTransactionStateHistory.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_order_transaction_order", "order_id"),)


class OrderTransactionStateHistory(Base, TimestampMixin):
    """Audit trail of transitions applied to an order transaction."""

    __tablename__ = "order_transaction_state_history"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_transaction_id: Mapped[UUID] = mapped_column(
        ForeignKey("order_transaction.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    from_state: Mapped[str] = mapped_column(String(32), nullable=False)
    to_state: Mapped[str] = mapped_column(String(32), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    order_transaction: Mapped[OrderTransaction] = relationship(back_populates="history")


class OrderDelivery(Base, TimestampMixin):
    """A shipment of an order. Held deliveries wait for payment."""

    __tablename__ = "order_delivery"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("shop_order.id", ondelete="CASCADE"), nullable=False
    )
    state: Mapped[str] = mapped_column(String(32), nullable=False, default="open")

    order: Mapped[Order] = relationship(back_populates="deliveries")
