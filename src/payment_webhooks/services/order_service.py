"""Order storage operations used by webhook reconciliation."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payment_webhooks.models import (
    Order,
    OrderDelivery,
    OrderTransaction,
    OrderTransactionStateHistory,
)
from payment_webhooks.services.policy import Decision
from payment_webhooks.services.state_machine import (
    OrderTransactionStateMachine,
    TransitionAction,
)

logger = logging.getLogger(__name__)

DELIVERY_STATE_OPEN = "open"
DELIVERY_STATE_ON_HOLD = "on_hold"


class OrderService:
    """Reads orders and applies transaction transitions within one session.

    Orders are memoized per instance. Create one instance per unit of work;
    never share it between deliveries.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._orders: dict[UUID, Order | None] = {}

    async def get_order(self, order_id: UUID) -> Order | None:
        """Get an order with its transactions and deliveries, or None."""
        if order_id not in self._orders:
            result = await self.session.execute(
                select(Order)
                .where(Order.id == order_id)
                .options(
                    selectinload(Order.transactions),
                    selectinload(Order.deliveries),
                )
            )
            self._orders[order_id] = result.scalar_one_or_none()
        return self._orders[order_id]

    async def get_order_transaction(
        self, order_id: UUID, order_transaction_id: UUID
    ) -> OrderTransaction | None:
        """Get the order transaction the gateway metadata points at."""
        order = await self.get_order(order_id)
        if order is None:
            return None
        for transaction in order.transactions:
            if transaction.id == order_transaction_id:
                return transaction
        return None

    async def transition(
        self,
        order_transaction: OrderTransaction,
        action: TransitionAction,
        comment: str | None = None,
    ) -> str:
        """Apply one named transition and record it.

        Raises InvalidTransitionError if the action is not valid from the
        current state.
        """
        from_state = order_transaction.state
        to_state = OrderTransactionStateMachine.target_state(from_state, action)
        order_transaction.state = to_state
        self.session.add(
            OrderTransactionStateHistory(
                order_transaction_id=order_transaction.id,
                action=action.value,
                from_state=from_state,
                to_state=to_state,
                comment=comment,
            )
        )
        await self.session.flush()
        logger.info(
            "Order transaction %s: %s -> %s (%s)",
            order_transaction.id,
            from_state,
            to_state,
            action.value,
        )
        return to_state

    async def apply_decision(
        self,
        order_transaction: OrderTransaction,
        decision: Decision,
        comment: str | None = None,
    ) -> str:
        """Apply every action of a decision in order. Returns the final state."""
        state = order_transaction.state
        for action in decision.actions:
            state = await self.transition(order_transaction, action, comment)
        return state

    async def unhold_last_delivery(self, order_id: UUID) -> bool:
        """Release the order's most recent delivery if it is on hold.

        Returns True if a delivery was released.
        """
        order = await self.get_order(order_id)
        if order is None or not order.deliveries:
            logger.warning("No delivery to unhold for order %s", order_id)
            return False

        delivery: OrderDelivery = order.deliveries[-1]
        if delivery.state != DELIVERY_STATE_ON_HOLD:
            return False

        delivery.state = DELIVERY_STATE_OPEN
        await self.session.flush()
        logger.info("Released held delivery %s of order %s", delivery.id, order_id)
        return True
