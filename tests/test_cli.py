"""Tests for the operational CLI.

Each command runs its own event loop against a SQLite file database.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from conftest import SPACE_ID, make_refund
from payment_webhooks.cli import PaymentWebhooksCli, parse_channel
from payment_webhooks.config import get_settings
from payment_webhooks.database import create_session_factory, get_engine
from payment_webhooks.gateway import GatewayPaymentMethodConfiguration, StubGatewayClient
from payment_webhooks.models import Order, OrderTransaction


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture(autouse=True)
def sqlite_settings(monkeypatch):
    """SQLite has no READ COMMITTED; reload settings without it."""
    monkeypatch.setenv("LOCK_ISOLATION_LEVEL", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def stub_gateway() -> StubGatewayClient:
    return StubGatewayClient()


@pytest.fixture
def cli(stub_gateway: StubGatewayClient) -> PaymentWebhooksCli:
    return PaymentWebhooksCli(gateway_factory=lambda channel: stub_gateway)


def run(cli: PaymentWebhooksCli, database_url: str, *args: str) -> int:
    return cli.run(["--database-url", database_url, *args])


def output_json(capsys) -> dict:
    out = capsys.readouterr().out
    return json.loads(out[out.index("{"):])


def seed_order(database_url: str, state: str) -> tuple[UUID, UUID]:
    order_id, transaction_id = uuid4(), uuid4()

    async def _seed() -> None:
        engine = get_engine(database_url)
        async with create_session_factory(engine)() as session:
            session.add(Order(id=order_id, order_number="20001"))
            await session.flush()
            session.add(
                OrderTransaction(
                    id=transaction_id,
                    order_id=order_id,
                    state=state,
                    total_amount=Decimal("100.00"),
                )
            )
            await session.commit()
        await engine.dispose()

    asyncio.run(_seed())
    return order_id, transaction_id


def read_state(database_url: str, transaction_id: UUID) -> str:
    async def _read() -> str:
        engine = get_engine(database_url)
        async with create_session_factory(engine)() as session:
            transaction = await session.get(OrderTransaction, transaction_id)
            state = transaction.state
        await engine.dispose()
        return state

    return asyncio.run(_read())


class TestParsing:
    """Test argument parsing."""

    def test_parse_channel(self):
        assert parse_channel("null") is None
        assert parse_channel("") is None
        assert parse_channel("storefront") == "storefront"

    def test_no_command_prints_help(self, cli):
        assert cli.run([]) == 1


class TestSettingsCommands:
    """Test init-db, set-settings and show-settings."""

    def test_store_and_show(self, cli, database_url, capsys):
        assert run(cli, database_url, "init-db") == 0
        capsys.readouterr()

        assert (
            run(
                cli,
                database_url,
                "set-settings",
                "--channel-id",
                "storefront",
                "--space-id",
                str(SPACE_ID),
                "--api-secret",
                "c2VjcmV0",
                "--no-email-enabled",
            )
            == 0
        )
        stored = output_json(capsys)
        assert stored["space_id"] == SPACE_ID
        assert stored["api_secret"] == "***"
        assert stored["email_enabled"] is False

        assert run(cli, database_url, "show-settings", "--channel-id", "storefront") == 0
        shown = output_json(capsys)
        assert shown == stored

    def test_set_settings_requires_values(self, cli, database_url):
        assert run(cli, database_url, "init-db") == 0
        assert run(cli, database_url, "set-settings", "--channel-id", "storefront") == 1

    def test_set_settings_rejects_invalid_values(self, cli, database_url):
        assert run(cli, database_url, "init-db") == 0
        assert run(cli, database_url, "set-settings", "--space-id", "-5") == 1


class TestGatewayCommands:
    """Test replay and sync-payment-methods."""

    def test_replay_applies_refund(self, cli, stub_gateway, database_url, tmp_path, capsys):
        assert run(cli, database_url, "init-db") == 0
        order_id, transaction_id = seed_order(database_url, "paid")
        stub_gateway.add_refund(
            SPACE_ID, make_refund(9, "SUCCESSFUL", "100.00", order_id, transaction_id)
        )
        payload = tmp_path / "refund.json"
        payload.write_text(
            json.dumps({"listenerEntityTechnicalName": "Refund", "spaceId": SPACE_ID, "entityId": 9})
        )
        capsys.readouterr()

        assert run(cli, database_url, "replay", "--file", str(payload)) == 0

        outcome = output_json(capsys)
        assert outcome["status"] == "processed"
        assert outcome["decision"]["to_state"] == "refunded"
        assert read_state(database_url, transaction_id) == "refunded"

    def test_replay_reports_failure(self, cli, database_url, tmp_path, capsys):
        assert run(cli, database_url, "init-db") == 0
        payload = tmp_path / "transaction.json"
        payload.write_text(
            json.dumps({"listenerEntityTechnicalName": "Transaction", "spaceId": SPACE_ID, "entityId": 1})
        )
        capsys.readouterr()

        assert run(cli, database_url, "replay", "--file", str(payload)) == 1

        outcome = output_json(capsys)
        assert outcome["status"] == "failed"
        assert outcome["error"]["kind"] == "entity_fetch_failed"

    def test_replay_missing_file(self, cli, database_url, tmp_path):
        assert run(cli, database_url, "init-db") == 0
        assert run(cli, database_url, "replay", "--file", str(tmp_path / "missing.json")) == 1

    def test_sync_payment_methods(self, cli, stub_gateway, database_url, capsys):
        assert run(cli, database_url, "init-db") == 0
        assert run(cli, database_url, "set-settings", "--space-id", str(SPACE_ID)) == 0
        stub_gateway.set_payment_methods(
            SPACE_ID,
            [GatewayPaymentMethodConfiguration(id=1, space_id=SPACE_ID, name="Card", state="ACTIVE")],
        )
        capsys.readouterr()

        assert run(cli, database_url, "sync-payment-methods") == 0

        result = output_json(capsys)
        assert result["created"] == 1
        assert result["space_id"] == SPACE_ID

    def test_sync_requires_space(self, cli, database_url, monkeypatch):
        monkeypatch.delenv("GATEWAY_SPACE_ID", raising=False)
        get_settings.cache_clear()
        assert run(cli, database_url, "init-db") == 0
        assert run(cli, database_url, "sync-payment-methods", "--channel-id", "outlet") == 1
