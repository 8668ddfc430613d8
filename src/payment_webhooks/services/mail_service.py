"""Order confirmation mail."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from payment_webhooks.models import Order
from payment_webhooks.models.base import utcnow

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    """Delivers the confirmation mail. Provided by the shop platform."""

    async def send_order_confirmation(self, order: Order) -> None:
        ...


class LoggingMailSender:
    """Sender that only logs. Default when no platform mailer is wired in."""

    async def send_order_confirmation(self, order: Order) -> None:
        logger.info("Order confirmation mail for order %s", order.order_number)


class OrderMailService:
    """Sends the order confirmation mail at most once per order.

    Run inside the order lock so that the sent-marker read and write are
    serialized with other deliveries for the same order.
    """

    def __init__(self, session: AsyncSession, sender: MailSender):
        self.session = session
        self.sender = sender

    async def send(self, order_id: UUID) -> bool:
        """Send the mail unless already sent. Returns True if sent now."""
        order = await self.session.get(Order, order_id)
        if order is None:
            logger.warning("Cannot send confirmation mail: order %s not found", order_id)
            return False
        if order.confirmation_mail_sent_at is not None:
            return False

        # Marked before sending; a send failure rolls the marker back with the unit of work
        order.confirmation_mail_sent_at = utcnow()
        await self.session.flush()
        await self.sender.send_order_confirmation(order)
        return True
