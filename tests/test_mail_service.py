"""Tests for the order confirmation mail."""

from uuid import uuid4

import pytest

from payment_webhooks.models import Order
from payment_webhooks.services.mail_service import OrderMailService

pytestmark = pytest.mark.asyncio


class MarkerCheckingSender:
    """Records whether the order was already marked when the mail went out."""

    def __init__(self) -> None:
        self.marked_at_send: list[bool] = []

    async def send_order_confirmation(self, order: Order) -> None:
        self.marked_at_send.append(order.confirmation_mail_sent_at is not None)


async def sent_at(session_factory, order_id):
    async with session_factory() as session:
        order = await session.get(Order, order_id)
        return order.confirmation_mail_sent_at


class TestOrderMailService:
    """Test at-most-once confirmation mail."""

    async def test_marker_written_before_sending(self, lock_manager, create_order, session_factory):
        order_id, _ = await create_order()
        sender = MarkerCheckingSender()

        sent = await lock_manager.run(
            order_id, lambda session: OrderMailService(session, sender).send(order_id)
        )

        assert sent is True
        assert sender.marked_at_send == [True]
        assert await sent_at(session_factory, order_id) is not None

    async def test_send_failure_rolls_marker_back(
        self, lock_manager, create_order, mail_sender, session_factory
    ):
        order_id, _ = await create_order()
        mail_sender.fail = True

        with pytest.raises(RuntimeError):
            await lock_manager.run(
                order_id, lambda session: OrderMailService(session, mail_sender).send(order_id)
            )
        assert await sent_at(session_factory, order_id) is None

        mail_sender.fail = False
        sent = await lock_manager.run(
            order_id, lambda session: OrderMailService(session, mail_sender).send(order_id)
        )

        assert sent is True
        assert mail_sender.sent == [order_id]

    async def test_not_sent_twice(self, lock_manager, create_order, mail_sender):
        order_id, _ = await create_order()

        for _ in range(2):
            await lock_manager.run(
                order_id, lambda session: OrderMailService(session, mail_sender).send(order_id)
            )

        assert mail_sender.sent == [order_id]

    async def test_missing_order(self, session, mail_sender):
        assert await OrderMailService(session, mail_sender).send(uuid4()) is False
        assert mail_sender.sent == []
