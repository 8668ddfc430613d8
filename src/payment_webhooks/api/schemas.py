"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from payment_webhooks.events import WebhookEvent


class WebhookRequest(BaseModel):
    """Body the gateway posts to the callback endpoint.

    Fields beyond the three the service needs are kept and echoed back.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    listener_entity_technical_name: str = Field(alias="listenerEntityTechnicalName")
    space_id: int = Field(alias="spaceId")
    entity_id: int = Field(alias="entityId")

    def to_event(self) -> WebhookEvent:
        return WebhookEvent(
            listener_entity_technical_name=self.listener_entity_technical_name,
            space_id=self.space_id,
            entity_id=self.entity_id,
            raw=self.model_dump(by_alias=True),
        )


class WebhookResponse(BaseModel):
    """Callback response: the echoed event, plus the sync result if any."""

    data: dict[str, Any]
    result: Any | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    version: str
    orders_in_flight: int = 0
