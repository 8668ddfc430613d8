"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_webhooks import __version__
from payment_webhooks.api.dependencies import GatewayClientFactory
from payment_webhooks.api.routes import health_router, webhooks_router
from payment_webhooks.config import Settings, get_settings
from payment_webhooks.database import dispose_db, init_db
from payment_webhooks.gateway.http_client import HttpGatewayClientFactory
from payment_webhooks.services.locking_service import KeyedLock
from payment_webhooks.services.mail_service import LoggingMailSender, MailSender


def create_app(
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    gateway_factory: GatewayClientFactory | None = None,
    mail_sender: MailSender | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to the production ones built from settings; tests
    pass their own.
    """
    app_settings = app_settings or get_settings()
    http_client: httpx.AsyncClient | None = None

    if session_factory is None:
        _, session_factory = init_db()
    if gateway_factory is None:
        http_client = httpx.AsyncClient()
        gateway_factory = HttpGatewayClientFactory(
            http_client, timeout=app_settings.gateway_timeout_seconds
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        yield
        # Shutdown
        if http_client is not None:
            await http_client.aclose()
        await dispose_db()

    app = FastAPI(
        title="Payment Webhooks",
        description="Payment gateway webhook endpoint",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.session_factory = session_factory
    app.state.order_locks = KeyedLock()
    app.state.lock_isolation_level = app_settings.lock_isolation_level
    app.state.gateway_factory = gateway_factory
    app.state.mail_sender = mail_sender or LoggingMailSender()

    # Exception handlers
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(webhooks_router)

    return app


# Default app instance for uvicorn
app = create_app()
