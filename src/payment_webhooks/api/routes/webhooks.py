"""Gateway webhook callback endpoint.

Authentication is not required here: the caller is the payment gateway, and
every entity is re-read from the gateway with the channel's credentials
before anything is changed locally.
"""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Path, Request, status
from fastapi.responses import JSONResponse

from payment_webhooks.api.dependencies import (
    GatewayFactory,
    LockManager,
    Mailer,
    SessionFactory,
)
from payment_webhooks.api.schemas import WebhookRequest, WebhookResponse
from payment_webhooks.services.settings_service import SettingsService
from payment_webhooks.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])

NULL_CHANNEL = "null"


def _echo(body: bytes) -> dict[str, Any]:
    """Best-effort echo of a body that may not be valid JSON."""
    try:
        parsed = json.loads(body or b"{}")
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


@router.post(
    "/callback/{channel_id}",
    response_model=WebhookResponse,
    responses={500: {"model": WebhookResponse}},
)
async def callback(
    request: Request,
    session_factory: SessionFactory,
    lock_manager: LockManager,
    gateway_factory: GatewayFactory,
    mail_sender: Mailer,
    channel_id: Annotated[str, Path()],
) -> JSONResponse:
    """Entry point the gateway calls for every webhook delivery.

    Returns 200 when the delivery was applied or is of a type this service
    ignores, 500 otherwise so that the gateway retries.
    """
    body = await request.body()
    echo = _echo(body)

    try:
        payload = WebhookRequest.model_validate_json(body or b"{}")
        event = payload.to_event()
        echo = event.to_dict()

        # Settings session is closed before the locked unit takes its own connection
        async with session_factory() as session:
            channel = await SettingsService(session).get_settings(
                None if channel_id == NULL_CHANNEL else channel_id
            )
        service = WebhookService(
            gateway_factory=gateway_factory,
            lock_manager=lock_manager,
            channel=channel,
            mail_sender=mail_sender,
        )
        outcome = await service.handle(event)
    except Exception as e:
        logger.critical("webhooks.callback: %s | %s", e, echo, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"data": echo},
        )

    content: dict[str, Any] = {"data": echo}
    if outcome.result is not None:
        content["result"] = outcome.result
    return JSONResponse(status_code=outcome.http_status, content=content)
