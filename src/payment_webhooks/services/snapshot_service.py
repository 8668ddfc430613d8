"""Idempotent storage of gateway snapshots.

Rows are keyed by (space_id, gateway id). Writing the same snapshot again
updates the row in place and changes nothing observable.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payment_webhooks.gateway.base import GatewayRefund, GatewayTransaction, OrderReference
from payment_webhooks.models import GatewayRefundRecord, GatewayTransactionRecord


class SnapshotService:
    """Upserts gateway transactions and refunds."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert_transaction(
        self,
        space_id: int,
        transaction: GatewayTransaction,
        reference: OrderReference,
    ) -> GatewayTransactionRecord:
        """Insert or refresh the local copy of a gateway transaction."""
        result = await self.session.execute(
            select(GatewayTransactionRecord).where(
                GatewayTransactionRecord.space_id == space_id,
                GatewayTransactionRecord.transaction_id == transaction.id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = GatewayTransactionRecord(space_id=space_id, transaction_id=transaction.id)
            self.session.add(record)

        record.state = transaction.state
        record.amount = transaction.amount
        record.currency = transaction.currency
        record.order_id = reference.order_id
        record.order_transaction_id = reference.order_transaction_id
        record.payload = transaction.raw
        await self.session.flush()
        return record

    async def upsert_refund(
        self,
        space_id: int,
        refund: GatewayRefund,
        reference: OrderReference,
    ) -> GatewayRefundRecord:
        """Insert or refresh the local copy of a gateway refund."""
        result = await self.session.execute(
            select(GatewayRefundRecord).where(
                GatewayRefundRecord.space_id == space_id,
                GatewayRefundRecord.refund_id == refund.id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = GatewayRefundRecord(space_id=space_id, refund_id=refund.id)
            self.session.add(record)

        record.transaction_id = refund.transaction.id
        record.state = refund.state
        record.amount = refund.amount
        record.order_id = reference.order_id
        record.payload = refund.raw
        await self.session.flush()
        return record
