"""Durable storage of the Meteo session tokens."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.storage import Store

from .const import (
    KEY_ACCESS_TOKEN,
    KEY_REFRESH_TOKEN,
    KEY_USER_ID,
    KEY_USERNAME,
    STORAGE_KEY,
    STORAGE_VERSION,
)
from .models import Session

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)


def create_store(hass: HomeAssistant, entry_id: str) -> Store[dict[str, Any]]:
    """Create the Home Assistant store holding one entry's session."""
    return Store(hass, STORAGE_VERSION, f"{STORAGE_KEY}.{entry_id}", private=True)


class TokenStore:
    """Persists access token, refresh token and user identity.

    The whole record is written in one save so a reader never sees a new
    access token paired with an old refresh token.
    """

    def __init__(self, store: Store[dict[str, Any]]) -> None:
        """Initialize with a backing key-value store."""
        self._store = store
        self._data: dict[str, Any] | None = None
        self._loaded = False

    async def _async_data(self) -> dict[str, Any]:
        if not self._loaded:
            self._data = await self._store.async_load() or {}
            self._loaded = True
        return self._data or {}

    async def async_load(self) -> Session | None:
        """Return the stored session, or None when logged out."""
        data = await self._async_data()
        access_token = data.get(KEY_ACCESS_TOKEN)
        if not access_token:
            return None
        return Session(
            access_token=access_token,
            refresh_token=data.get(KEY_REFRESH_TOKEN) or "",
            user_id=str(data.get(KEY_USER_ID) or ""),
            username=data.get(KEY_USERNAME),
        )

    async def async_save(self, session: Session) -> None:
        """Persist a complete session."""
        data = {
            KEY_ACCESS_TOKEN: session.access_token,
            KEY_REFRESH_TOKEN: session.refresh_token,
            KEY_USER_ID: session.user_id,
            KEY_USERNAME: session.username,
        }
        await self._store.async_save(data)
        self._data = data
        self._loaded = True
        _LOGGER.debug("Tokens saved for user id %s", session.user_id)

    async def async_update_access_token(self, access_token: str) -> None:
        """Replace the access token, keeping the rest of the session."""
        data = {**await self._async_data(), KEY_ACCESS_TOKEN: access_token}
        await self._store.async_save(data)
        self._data = data

    async def async_clear(self) -> None:
        """Remove every stored session field."""
        await self._store.async_remove()
        self._data = {}
        self._loaded = True
        _LOGGER.debug("Session data cleared")
