"""Local copies of gateway entities.

Rows are keyed by the gateway's own identifiers so that re-delivered webhooks
overwrite the same row instead of adding new ones.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payment_webhooks.models.base import Base, TimestampMixin, UpdatedAtMixin


class GatewayTransactionRecord(Base, TimestampMixin, UpdatedAtMixin):
    """Last seen snapshot of a gateway transaction."""

    __tablename__ = "gateway_transaction"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    space_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    order_id: Mapped[UUID] = mapped_column(nullable=False)
    order_transaction_id: Mapped[UUID] = mapped_column(nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("space_id", "transaction_id", name="uq_gateway_transaction"),
    )


class GatewayRefundRecord(Base, TimestampMixin, UpdatedAtMixin):
    """Last seen snapshot of a gateway refund."""

    __tablename__ = "gateway_refund"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    space_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    refund_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    order_id: Mapped[UUID] = mapped_column(nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("space_id", "refund_id", name="uq_gateway_refund"),
    )


class PaymentMethodConfigurationRecord(Base, TimestampMixin, UpdatedAtMixin):
    """Payment method offered by the gateway for a space."""

    __tablename__ = "payment_method_configuration"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    space_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    configuration_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "space_id", "configuration_id", name="uq_payment_method_configuration"
        ),
    )


class ChannelSettingRecord(Base, TimestampMixin, UpdatedAtMixin):
    """Gateway settings for a sales channel. A NULL channel holds the defaults."""

    __tablename__ = "gateway_channel_setting"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    space_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    api_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    base_url: Mapped[str | None] = mapped_column(Text, nullable=True)
