"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_webhooks.services.locking_service import OrderLockManager
from payment_webhooks.services.mail_service import MailSender
from payment_webhooks.services.webhook_service import GatewayClientFactory


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory for work that must not hold a connection for the whole request."""
    return request.app.state.session_factory


def get_lock_manager(request: Request) -> OrderLockManager:
    """Lock manager sharing the application-wide per-order lock registry."""
    state = request.app.state
    return OrderLockManager(
        state.session_factory,
        state.order_locks,
        isolation_level=state.lock_isolation_level,
    )


def get_gateway_factory(request: Request) -> GatewayClientFactory:
    """Factory turning channel settings into a gateway client."""
    return request.app.state.gateway_factory


def get_mail_sender(request: Request) -> MailSender:
    """Platform mail sender."""
    return request.app.state.mail_sender


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
LockManager = Annotated[OrderLockManager, Depends(get_lock_manager)]
GatewayFactory = Annotated[GatewayClientFactory, Depends(get_gateway_factory)]
Mailer = Annotated[MailSender, Depends(get_mail_sender)]
