"""Payment Webhooks Command Line Interface.

Provides operational tools for:
- Running the webhook server
- Creating the database schema
- Replaying a stored webhook payload
- Synchronizing payment method configurations
- Showing and storing per-channel gateway settings

Usage:
    python -m payment_webhooks.cli serve
    python -m payment_webhooks.cli init-db
    python -m payment_webhooks.cli replay --channel-id X --file payload.json
    python -m payment_webhooks.cli sync-payment-methods --channel-id X
    python -m payment_webhooks.cli show-settings --channel-id X
    python -m payment_webhooks.cli set-settings --channel-id X --space-id 1 --user-id 2
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import uvicorn
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_webhooks.api.dependencies import GatewayClientFactory
from payment_webhooks.api.schemas import WebhookRequest
from payment_webhooks.config import SettingsError, get_settings
from payment_webhooks.database import create_schema, create_session_factory, get_engine
from payment_webhooks.gateway.base import GatewayApiError
from payment_webhooks.gateway.http_client import HttpGatewayClientFactory
from payment_webhooks.services.locking_service import OrderLockManager
from payment_webhooks.services.mail_service import MailSender
from payment_webhooks.services.payment_method_service import PaymentMethodConfigurationService
from payment_webhooks.services.settings_service import SettingsService
from payment_webhooks.services.webhook_service import WebhookService

Command = Callable[[argparse.Namespace, async_sessionmaker[AsyncSession]], Awaitable[int]]


def parse_channel(s: str) -> str | None:
    """Channel id; "null" and "" select the global settings."""
    return None if s in ("", "null") else s


class PaymentWebhooksCli:
    """Payment Webhooks Command Line Interface.

    session_factory and gateway_factory default to the ones built from
    settings; tests inject their own.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        gateway_factory: GatewayClientFactory | None = None,
        mail_sender: MailSender | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway_factory = gateway_factory
        self.mail_sender = mail_sender
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payment_webhooks.cli",
            description="Payment webhook operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # serve command
        serve = subparsers.add_parser("serve", help="Run the webhook server")
        serve.add_argument("--host", type=str, help="Bind address (default: $HOST)")
        serve.add_argument("--port", type=int, help="Bind port (default: $PORT)")

        # init-db command
        subparsers.add_parser("init-db", help="Create database tables")

        # replay command
        replay = subparsers.add_parser(
            "replay",
            help="Run a stored webhook payload through the callback pipeline",
        )
        replay.add_argument(
            "--channel-id",
            type=parse_channel,
            default=None,
            help="Sales channel the webhook was addressed to (default: global)",
        )
        replay.add_argument(
            "--file",
            type=Path,
            required=True,
            help="JSON file holding the webhook body",
        )

        # sync-payment-methods command
        sync = subparsers.add_parser(
            "sync-payment-methods",
            help="Synchronize payment method configurations from the gateway",
        )
        sync.add_argument(
            "--channel-id",
            type=parse_channel,
            default=None,
            help="Sales channel whose space to synchronize (default: global)",
        )

        # show-settings command
        show = subparsers.add_parser(
            "show-settings",
            help="Show resolved gateway settings for a channel",
        )
        show.add_argument(
            "--channel-id",
            type=parse_channel,
            default=None,
            help="Sales channel (default: global)",
        )

        # set-settings command
        store = subparsers.add_parser(
            "set-settings",
            help="Store gateway settings for a channel",
        )
        store.add_argument(
            "--channel-id",
            type=parse_channel,
            default=None,
            help="Sales channel (default: global)",
        )
        store.add_argument("--space-id", type=int, help="Gateway space id")
        store.add_argument("--user-id", type=int, help="Application user id")
        store.add_argument("--api-secret", type=str, help="Base64 encoded MAC secret")
        store.add_argument(
            "--email-enabled",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Send order confirmation mails on successful payment",
        )
        store.add_argument("--base-url", type=str, help="Gateway API root")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        if parsed.command == "serve":
            return self._cmd_serve(parsed)

        # Dispatch to command handler
        handlers: dict[str, Command] = {
            "init-db": self._cmd_init_db,
            "replay": self._cmd_replay,
            "sync-payment-methods": self._cmd_sync_payment_methods,
            "show-settings": self._cmd_show_settings,
            "set-settings": self._cmd_set_settings,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return asyncio.run(self._with_database(parsed, handler))

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    async def _with_database(self, args: argparse.Namespace, handler: Command) -> int:
        """Run handler with a session factory, disposing an engine created here."""
        if self.session_factory is not None:
            return await handler(args, self.session_factory)

        engine = get_engine(args.database_url)
        try:
            return await handler(args, create_session_factory(engine))
        finally:
            await engine.dispose()

    async def _with_gateway(
        self,
        operation: Callable[[GatewayClientFactory], Awaitable[int]],
    ) -> int:
        if self.gateway_factory is not None:
            return await operation(self.gateway_factory)
        app_settings = get_settings()
        async with httpx.AsyncClient() as http:
            return await operation(
                HttpGatewayClientFactory(http, timeout=app_settings.gateway_timeout_seconds)
            )

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        """Run the webhook server."""
        app_settings = get_settings()
        uvicorn.run(
            "payment_webhooks.api.app:app",
            host=args.host or app_settings.HOST,
            port=args.port or app_settings.PORT,
            reload=app_settings.DEBUG,
        )
        return 0

    async def _cmd_init_db(
        self, args: argparse.Namespace, session_factory: async_sessionmaker[AsyncSession]
    ) -> int:
        """Create database tables."""
        await create_schema(session_factory.kw["bind"])
        print("Database schema created.")
        return 0

    async def _cmd_replay(
        self, args: argparse.Namespace, session_factory: async_sessionmaker[AsyncSession]
    ) -> int:
        """Replay a stored webhook payload."""
        try:
            body = args.file.read_bytes()
            payload = WebhookRequest.model_validate_json(body)
        except (OSError, ValidationError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        async with session_factory() as session:
            channel = await SettingsService(session).get_settings(args.channel_id)

        app_settings = get_settings()
        lock_manager = OrderLockManager(
            session_factory, isolation_level=app_settings.lock_isolation_level
        )

        async def replay(gateway_factory: GatewayClientFactory) -> int:
            service = WebhookService(
                gateway_factory=gateway_factory,
                lock_manager=lock_manager,
                channel=channel,
                mail_sender=self.mail_sender,
            )
            try:
                outcome = await service.handle(payload.to_event())
            except SettingsError as e:
                print(f"ERROR: {e}", file=sys.stderr)
                return 1
            _print_json(outcome.to_dict())
            return 0 if outcome.ok else 1

        return await self._with_gateway(replay)

    async def _cmd_sync_payment_methods(
        self, args: argparse.Namespace, session_factory: async_sessionmaker[AsyncSession]
    ) -> int:
        """Synchronize payment method configurations for the channel's space."""

        async def sync(gateway_factory: GatewayClientFactory) -> int:
            async with session_factory() as session:
                channel = await SettingsService(session).get_settings(args.channel_id)
                if channel.space_id is None:
                    print(
                        f"ERROR: no space id configured for channel {args.channel_id or 'default'}",
                        file=sys.stderr,
                    )
                    return 1
                try:
                    service = PaymentMethodConfigurationService(session, gateway_factory(channel))
                    result = await service.synchronize(channel.space_id)
                    await session.commit()
                except (SettingsError, GatewayApiError) as e:
                    await session.rollback()
                    print(f"ERROR: {e}", file=sys.stderr)
                    return 1
            _print_json(result.to_dict())
            return 0

        return await self._with_gateway(sync)

    async def _cmd_show_settings(
        self, args: argparse.Namespace, session_factory: async_sessionmaker[AsyncSession]
    ) -> int:
        """Show resolved settings for a channel."""
        async with session_factory() as session:
            channel = await SettingsService(session).get_settings(args.channel_id)
        _print_json(channel.to_public_dict())
        return 0

    async def _cmd_set_settings(
        self, args: argparse.Namespace, session_factory: async_sessionmaker[AsyncSession]
    ) -> int:
        """Store settings for a channel."""
        values: dict[str, Any] = {
            name: getattr(args, name)
            for name in ("space_id", "user_id", "api_secret", "email_enabled", "base_url")
            if getattr(args, name) is not None
        }
        if not values:
            print("ERROR: nothing to store", file=sys.stderr)
            return 1

        async with session_factory() as session:
            service = SettingsService(session)
            await service.save_settings(args.channel_id, **values)
            try:
                channel = await service.get_settings(args.channel_id)
            except ValueError as e:
                await session.rollback()
                print(f"ERROR: {e}", file=sys.stderr)
                return 1
            await session.commit()

        _print_json(channel.to_public_dict())
        return 0


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = PaymentWebhooksCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
