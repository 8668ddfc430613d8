"""Payment method configuration synchronization."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payment_webhooks.gateway.base import GatewayClient
from payment_webhooks.models import PaymentMethodConfigurationRecord

logger = logging.getLogger(__name__)


@dataclass
class SynchronizationResult:
    """Result of a payment method synchronization."""

    space_id: int
    created: int = 0
    updated: int = 0
    deactivated: int = 0
    configurations: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "space_id": self.space_id,
            "created": self.created,
            "updated": self.updated,
            "deactivated": self.deactivated,
            "configurations": self.configurations,
        }


class PaymentMethodConfigurationService:
    """Mirrors the gateway's payment method configurations for a space.

    Configurations the gateway returns are inserted or refreshed; local ones
    it no longer returns are deactivated, never deleted.
    """

    def __init__(self, session: AsyncSession, gateway: GatewayClient):
        self.session = session
        self.gateway = gateway

    async def synchronize(self, space_id: int) -> SynchronizationResult:
        """Pull configurations from the gateway. Raises GatewayApiError on fetch failure."""
        remote = await self.gateway.search_payment_method_configurations(space_id)
        result = SynchronizationResult(space_id=space_id)

        existing_rows = await self.session.execute(
            select(PaymentMethodConfigurationRecord).where(
                PaymentMethodConfigurationRecord.space_id == space_id
            )
        )
        existing = {row.configuration_id: row for row in existing_rows.scalars()}

        seen: set[int] = set()
        for configuration in remote:
            seen.add(configuration.id)
            record = existing.get(configuration.id)
            if record is None:
                record = PaymentMethodConfigurationRecord(
                    space_id=space_id, configuration_id=configuration.id
                )
                self.session.add(record)
                result.created += 1
            else:
                result.updated += 1

            record.name = configuration.name
            record.state = configuration.state
            record.sort_order = configuration.sort_order
            record.description = configuration.description
            record.image_url = configuration.image_url
            record.active = configuration.is_active
            result.configurations.append(
                {
                    "id": configuration.id,
                    "name": configuration.name,
                    "state": configuration.state,
                    "active": configuration.is_active,
                }
            )

        for configuration_id, record in existing.items():
            if configuration_id not in seen and record.active:
                record.active = False
                result.deactivated += 1

        await self.session.flush()
        logger.info(
            "Synchronized payment methods for space %s: %s created, %s updated, %s deactivated",
            space_id,
            result.created,
            result.updated,
            result.deactivated,
        )
        return result
