"""Per-channel gateway settings storage."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payment_webhooks.config import ChannelSettings, Settings, get_settings
from payment_webhooks.models import ChannelSettingRecord

_FIELDS = ("space_id", "user_id", "api_secret", "email_enabled", "base_url")


class SettingsService:
    """Resolves settings for a channel.

    Lookup order per field: the channel's row, the global row (channel_id NULL),
    then environment defaults.
    """

    def __init__(self, session: AsyncSession, app_settings: Settings | None = None):
        self.session = session
        self.app_settings = app_settings or get_settings()

    async def _get_record(self, channel_id: str | None) -> ChannelSettingRecord | None:
        if channel_id is None:
            condition = ChannelSettingRecord.channel_id.is_(None)
        else:
            condition = ChannelSettingRecord.channel_id == channel_id
        result = await self.session.execute(select(ChannelSettingRecord).where(condition))
        return result.scalar_one_or_none()

    async def get_settings(self, channel_id: str | None) -> ChannelSettings:
        """Resolve settings for a channel (None = global)."""
        defaults = ChannelSettings.from_settings(self.app_settings, channel_id)
        values: dict[str, Any] = {name: getattr(defaults, name) for name in _FIELDS}

        records = [await self._get_record(None)]
        if channel_id is not None:
            records.append(await self._get_record(channel_id))

        for record in records:
            if record is None:
                continue
            for name in _FIELDS:
                value = getattr(record, name)
                if value is not None:
                    values[name] = value

        return ChannelSettings(channel_id=channel_id, **values)

    async def save_settings(self, channel_id: str | None, **values: Any) -> ChannelSettingRecord:
        """Create or update the stored row for a channel.

        Only the given fields are written; pass None to clear a field so it
        falls back to the global value again.
        """
        unknown = set(values) - set(_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")

        record = await self._get_record(channel_id)
        if record is None:
            record = ChannelSettingRecord(channel_id=channel_id)
            self.session.add(record)
        for name, value in values.items():
            setattr(record, name, value)
        await self.session.flush()
        return record
