"""Pytest fixtures for webhook service tests."""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from typing import Any, AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from payment_webhooks.config import ChannelSettings, get_settings
from payment_webhooks.database import create_schema, create_session_factory, get_engine
from payment_webhooks.gateway import (
    GatewayRefund,
    GatewayTransaction,
    GatewayTransactionInvoice,
    StubGatewayClient,
)
from payment_webhooks.models import Order, OrderDelivery, OrderTransaction
from payment_webhooks.services.locking_service import KeyedLock, OrderLockManager
from payment_webhooks.services.webhook_service import WebhookService

SPACE_ID = 4711
CHANNEL_ID = "storefront"
# base64("secret")
API_SECRET = "c2VjcmV0"


class RecordingMailSender:
    """Mail sender that remembers which orders it was asked to confirm."""

    def __init__(self) -> None:
        self.sent: list[UUID] = []
        self.fail = False

    async def send_order_confirmation(self, order: Order) -> None:
        if self.fail:
            raise RuntimeError("mail transport down")
        self.sent.append(order.id)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File backed SQLite so that concurrent sessions get their own connection."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'webhooks.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def lock_manager(session_factory: async_sessionmaker[AsyncSession]) -> OrderLockManager:
    # SQLite has no READ COMMITTED
    return OrderLockManager(session_factory, KeyedLock(), isolation_level=None)


@pytest.fixture
def gateway() -> StubGatewayClient:
    return StubGatewayClient()


@pytest.fixture
def channel() -> ChannelSettings:
    return ChannelSettings(
        channel_id=CHANNEL_ID,
        space_id=SPACE_ID,
        user_id=42,
        api_secret=API_SECRET,
        email_enabled=True,
    )


@pytest.fixture
def mail_sender() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture
def webhook_service(
    gateway: StubGatewayClient,
    lock_manager: OrderLockManager,
    channel: ChannelSettings,
    mail_sender: RecordingMailSender,
) -> WebhookService:
    return WebhookService(
        gateway=gateway,
        lock_manager=lock_manager,
        channel=channel,
        mail_sender=mail_sender,
    )


@pytest.fixture
def create_order(session_factory: async_sessionmaker[AsyncSession]):
    """Factory persisting an order with one transaction (and optionally a delivery)."""

    async def _create(
        state: str = "open",
        total_amount: Decimal = Decimal("100.00"),
        delivery_state: str | None = None,
    ) -> tuple[UUID, UUID]:
        order_id = uuid4()
        transaction_id = uuid4()
        async with session_factory() as session:
            session.add(Order(id=order_id, channel_id=CHANNEL_ID, order_number="10001"))
            await session.flush()
            session.add(
                OrderTransaction(
                    id=transaction_id,
                    order_id=order_id,
                    state=state,
                    total_amount=total_amount,
                )
            )
            if delivery_state is not None:
                session.add(OrderDelivery(order_id=order_id, state=delivery_state))
            await session.commit()
        return order_id, transaction_id

    return _create


@pytest.fixture
def load_transaction(session_factory: async_sessionmaker[AsyncSession]):
    """Read an order transaction back in a fresh session."""

    async def _load(transaction_id: UUID) -> OrderTransaction:
        async with session_factory() as session:
            result = await session.execute(
                select(OrderTransaction).where(OrderTransaction.id == transaction_id)
            )
            return result.scalar_one()

    return _load


def metadata_for(order_id: UUID, transaction_id: UUID) -> dict[str, Any]:
    return {"orderId": str(order_id), "orderTransactionId": str(transaction_id)}


def make_transaction(
    entity_id: int,
    state: str,
    order_id: UUID | None = None,
    transaction_id: UUID | None = None,
    amount: str = "100.00",
) -> GatewayTransaction:
    metadata = (
        metadata_for(order_id, transaction_id)
        if order_id is not None and transaction_id is not None
        else {}
    )
    return GatewayTransaction(
        id=entity_id,
        space_id=SPACE_ID,
        state=state,
        amount=Decimal(amount),
        currency="CHF",
        metadata=metadata,
    )


def make_refund(
    entity_id: int,
    state: str,
    amount: str,
    order_id: UUID,
    transaction_id: UUID,
) -> GatewayRefund:
    return GatewayRefund(
        id=entity_id,
        state=state,
        amount=Decimal(amount),
        transaction=make_transaction(entity_id + 1000, "FULFILL", order_id, transaction_id),
    )


def make_invoice(
    entity_id: int,
    state: str,
    order_id: UUID,
    transaction_id: UUID,
) -> GatewayTransactionInvoice:
    return GatewayTransactionInvoice(
        id=entity_id,
        state=state,
        amount=Decimal("100.00"),
        transaction=make_transaction(entity_id + 2000, "FULFILL", order_id, transaction_id),
    )


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    gateway: StubGatewayClient,
    mail_sender: RecordingMailSender,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app wired to the test database and stub gateway."""
    from payment_webhooks.api.app import create_app

    app = create_app(
        session_factory=session_factory,
        gateway_factory=lambda channel: gateway,
        mail_sender=mail_sender,
        app_settings=dataclasses.replace(get_settings(), lock_isolation_level=None),
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
