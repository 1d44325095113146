"""Per-user grace window overrides."""

from __future__ import annotations

import logging
from typing import Any

from .exceptions import InvalidRequestError
from .models import DEFAULT_GRACE_WINDOW, UserSettings, clamp_grace_window
from .store import Store

logger = logging.getLogger(__name__)


class SettingsStore:
    """Reads and writes UserSettings through the backing store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def get(self, owner_id: str | None) -> UserSettings:
        """Return the owner's settings, or the defaults when none are stored."""
        if owner_id:
            stored = await self._store.get_settings(owner_id)
            if stored is not None:
                return stored
        return UserSettings(owner_id=owner_id or "", grace_window_seconds=DEFAULT_GRACE_WINDOW)

    async def override_for(self, owner_id: str | None) -> int | None:
        """Return the owner's saved grace window, if they have one."""
        if not owner_id:
            return None
        stored = await self._store.get_settings(owner_id)
        return stored.grace_window_seconds if stored is not None else None

    async def update(self, owner_id: str | None, grace_window: Any) -> UserSettings:
        if not owner_id:
            logger.warning("Settings update attempted without a user id")
            raise InvalidRequestError("userId required")
        if grace_window is None:
            raise InvalidRequestError("graceWindow required")

        settings = UserSettings(owner_id=owner_id, grace_window_seconds=clamp_grace_window(grace_window))
        await self._store.put_settings(settings)
        logger.info("Settings updated for user %s: graceWindow = %ss", owner_id, settings.grace_window_seconds)
        return settings
