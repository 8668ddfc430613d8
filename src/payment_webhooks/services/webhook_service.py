"""Webhook reconciliation.

Each delivery goes through the same steps:

1. Classify by listenerEntityTechnicalName
2. Fetch the entity from the gateway (no lock held, nothing written yet)
3. Derive the order reference from the metadata the shop attached
4. In one locked unit of work: read the local transaction, store the
   snapshot, decide, apply
5. Run best-effort side effects, each in its own locked unit of work

Failures are returned as a WebhookOutcome; nothing propagates to the caller
except programming errors outside these steps.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from payment_webhooks.config import ChannelSettings
from payment_webhooks.events import ListenerEntity, WebhookEvent
from payment_webhooks.gateway.base import (
    GatewayApiError,
    GatewayClient,
    OrderReference,
)
from payment_webhooks.services.locking_service import OrderLockManager
from payment_webhooks.services.mail_service import LoggingMailSender, MailSender, OrderMailService
from payment_webhooks.services.order_service import OrderService
from payment_webhooks.services.outcomes import ErrorKind, WebhookError, WebhookOutcome
from payment_webhooks.services.payment_method_service import PaymentMethodConfigurationService
from payment_webhooks.services.policy import (
    Decision,
    SideEffect,
    decide_invoice,
    decide_refund,
    decide_transaction,
)
from payment_webhooks.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

GatewayClientFactory = Callable[[ChannelSettings], GatewayClient]
Handler = Callable[[WebhookEvent], Awaitable[WebhookOutcome]]
UnitOfWork = Callable[[AsyncSession], Awaitable["Decision | WebhookError"]]


class WebhookService:
    """Handles one webhook delivery for one channel."""

    def __init__(
        self,
        *,
        lock_manager: OrderLockManager,
        channel: ChannelSettings,
        gateway: GatewayClient | None = None,
        gateway_factory: GatewayClientFactory | None = None,
        mail_sender: MailSender | None = None,
    ):
        if gateway is None and gateway_factory is None:
            raise ValueError("WebhookService needs a gateway or a gateway_factory")
        self._gateway = gateway
        self.gateway_factory = gateway_factory
        self.lock_manager = lock_manager
        self.channel = channel
        self.mail_sender = mail_sender or LoggingMailSender()
        self._handlers: dict[str, Handler] = {
            ListenerEntity.PAYMENT_METHOD_CONFIGURATION.value: self.update_payment_method_configuration,
            ListenerEntity.REFUND.value: self.update_refund,
            ListenerEntity.TRANSACTION.value: self.update_transaction,
            ListenerEntity.TRANSACTION_INVOICE.value: self.update_transaction_invoice,
        }

    @property
    def gateway(self) -> GatewayClient:
        """Client for the channel, built on first use.

        Unsupported deliveries never reach here, so they need no credentials.
        """
        if self._gateway is None:
            if self.gateway_factory is None:
                raise ValueError("WebhookService needs a gateway or a gateway_factory")
            self._gateway = self.gateway_factory(self.channel)
        return self._gateway

    async def handle(self, event: WebhookEvent) -> WebhookOutcome:
        """Route a delivery to its handler."""
        handler = self._handlers.get(event.listener_entity_technical_name)
        if handler is None:
            logger.critical(
                "WebhookService.handle: Listener not implemented: %s", event.to_dict()
            )
            return WebhookOutcome.unsupported(event)
        return await handler(event)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def update_payment_method_configuration(self, event: WebhookEvent) -> WebhookOutcome:
        """Synchronize payment methods. Not order scoped, so no order lock."""
        space_id = self.channel.space_id or event.space_id
        async with self.lock_manager.session_factory() as session:
            try:
                service = PaymentMethodConfigurationService(session, self.gateway)
                result = await service.synchronize(space_id)
                await session.commit()
            except GatewayApiError as e:
                await session.rollback()
                return self._fail(
                    event, ErrorKind.ENTITY_FETCH_FAILED, str(e), "update_payment_method_configuration"
                )
            except Exception as e:
                await session.rollback()
                logger.exception("Payment method synchronization failed for space %s", space_id)
                return self._fail(
                    event, ErrorKind.SYNCHRONIZATION_FAILED, str(e), "update_payment_method_configuration"
                )
        return WebhookOutcome.processed(event, result=result.to_dict())

    async def update_refund(self, event: WebhookEvent) -> WebhookOutcome:
        """Reflect a gateway refund on the local transaction."""
        try:
            refund = await self.gateway.read_refund(event.space_id, event.entity_id)
        except GatewayApiError as e:
            return self._fail(event, ErrorKind.ENTITY_FETCH_FAILED, str(e), "update_refund")

        reference = refund.order_reference
        if reference is None:
            return self._fail(
                event,
                ErrorKind.METADATA_MISSING,
                f"Refund {refund.id} has no order reference in its transaction metadata",
                "update_refund",
            )

        async def operation(session: AsyncSession) -> Decision | WebhookError:
            orders = OrderService(session)
            order_transaction = await orders.get_order_transaction(
                reference.order_id, reference.order_transaction_id
            )
            if order_transaction is None:
                return await _missing_transaction(orders, reference)
            await SnapshotService(session).upsert_refund(event.space_id, refund, reference)
            decision = decide_refund(
                order_transaction.state,
                refund.state,
                refund.amount,
                order_transaction.total_amount,
            )
            await orders.apply_decision(order_transaction, decision, f"gateway refund {refund.id}")
            return decision

        return await self._reconcile(event, reference, operation, "update_refund")

    async def update_transaction(self, event: WebhookEvent) -> WebhookOutcome:
        """Reflect a gateway transaction state on the local transaction."""
        try:
            transaction = await self.gateway.read_transaction(event.space_id, event.entity_id)
        except GatewayApiError as e:
            return self._fail(event, ErrorKind.ENTITY_FETCH_FAILED, str(e), "update_transaction")

        reference = transaction.order_reference
        if reference is None:
            return self._fail(
                event,
                ErrorKind.METADATA_MISSING,
                f"Transaction {transaction.id} has no order reference in its metadata",
                "update_transaction",
            )

        async def operation(session: AsyncSession) -> Decision | WebhookError:
            orders = OrderService(session)
            order_transaction = await orders.get_order_transaction(
                reference.order_id, reference.order_transaction_id
            )
            if order_transaction is None:
                return await _missing_transaction(orders, reference)
            await SnapshotService(session).upsert_transaction(
                event.space_id, transaction, reference
            )
            decision = decide_transaction(
                order_transaction.state,
                transaction.state,
                self.channel.email_enabled,
            )
            await orders.apply_decision(
                order_transaction, decision, f"gateway transaction {transaction.id}"
            )
            return decision

        return await self._reconcile(event, reference, operation, "update_transaction")

    async def update_transaction_invoice(self, event: WebhookEvent) -> WebhookOutcome:
        """Reflect a gateway invoice state on the local transaction."""
        try:
            invoice = await self.gateway.read_transaction_invoice(event.space_id, event.entity_id)
        except GatewayApiError as e:
            return self._fail(
                event, ErrorKind.ENTITY_FETCH_FAILED, str(e), "update_transaction_invoice"
            )

        reference = invoice.order_reference
        if reference is None:
            return self._fail(
                event,
                ErrorKind.METADATA_MISSING,
                f"Transaction invoice {invoice.id} has no order reference",
                "update_transaction_invoice",
            )

        async def operation(session: AsyncSession) -> Decision | WebhookError:
            orders = OrderService(session)
            order_transaction = await orders.get_order_transaction(
                reference.order_id, reference.order_transaction_id
            )
            if order_transaction is None:
                return await _missing_transaction(orders, reference)
            decision = decide_invoice(order_transaction.state, invoice.state)
            await orders.apply_decision(
                order_transaction, decision, f"gateway invoice {invoice.id}"
            )
            return decision

        return await self._reconcile(event, reference, operation, "update_transaction_invoice")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reconcile(
        self,
        event: WebhookEvent,
        reference: OrderReference,
        operation: UnitOfWork,
        origin: str,
    ) -> WebhookOutcome:
        """Run operation under the order lock, then its side effects."""
        try:
            result = await self.lock_manager.run(reference.order_id, operation)
        except Exception as e:
            logger.exception(
                "WebhookService.%s: unit of work failed for order %s",
                origin,
                reference.order_id,
            )
            return self._fail(event, ErrorKind.UNIT_OF_WORK_FAILED, str(e), origin)

        if isinstance(result, WebhookError):
            return self._fail(event, result.kind, result.message, origin)

        for warning in result.warnings:
            logger.warning(
                "WebhookService.%s: order %s: %s", origin, reference.order_id, warning
            )

        await self._run_side_effects(reference, result)
        return WebhookOutcome.processed(event, decision=result)

    async def _run_side_effects(self, reference: OrderReference, decision: Decision) -> None:
        """Run side effects after the transition is committed. Failures are logged only."""
        for effect in decision.side_effects:
            try:
                if effect is SideEffect.SEND_CONFIRMATION_MAIL:
                    await self.lock_manager.run(
                        reference.order_id,
                        lambda session: OrderMailService(session, self.mail_sender).send(
                            reference.order_id
                        ),
                    )
                elif effect is SideEffect.UNHOLD_DELIVERY:
                    await self.lock_manager.run(
                        reference.order_id,
                        lambda session: OrderService(session).unhold_last_delivery(
                            reference.order_id
                        ),
                    )
            except Exception:
                logger.exception(
                    "Side effect %s failed for order %s", effect.value, reference.order_id
                )

    def _fail(
        self,
        event: WebhookEvent,
        kind: ErrorKind,
        message: str,
        origin: str,
    ) -> WebhookOutcome:
        payload: dict[str, Any] = event.to_dict()
        logger.critical("WebhookService.%s: %s: %s | %s", origin, kind.value, message, payload)
        return WebhookOutcome.failed(event, kind, message)


async def _missing_transaction(orders: OrderService, reference: OrderReference) -> WebhookError:
    if await orders.get_order(reference.order_id) is None:
        return WebhookError(ErrorKind.ORDER_NOT_FOUND, f"Order {reference.order_id} not found")
    return WebhookError(
        ErrorKind.ORDER_TRANSACTION_NOT_FOUND,
        f"Order transaction {reference.order_transaction_id} not found "
        f"on order {reference.order_id}",
    )
