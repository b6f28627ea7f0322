from __future__ import annotations

import logging
from dataclasses import dataclass

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from . import api
from .cache import ValueCache
from .const import BASE_URL, CONF_BASE_URL, DOMAIN
from .coordinator import MeteoDataCoordinator
from .gateway import SensorDataGateway
from .retry import RetryExecutor
from .session import SessionManager
from .token_store import TokenStore, create_store
from .visibility import ParameterVisibilityGateway

_LOGGER = logging.getLogger(__name__)


@dataclass
class MeteoRuntimeData:
    """Objects shared by everything that uses one config entry."""

    session_manager: SessionManager
    cache: ValueCache
    visibility: ParameterVisibilityGateway
    gateway: SensorDataGateway
    coordinator: MeteoDataCoordinator

    async def async_logout(self) -> None:
        """Clear the session and every cached reading."""
        await self.session_manager.async_logout()
        self.cache.clear()


def _store_key(entry: ConfigEntry) -> str:
    return entry.unique_id or entry.entry_id


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Meteo integration for entry %s", entry.entry_id)

    client = api.create_session_client(hass, entry.data.get(CONF_BASE_URL, BASE_URL))
    token_store = TokenStore(create_store(hass, _store_key(entry)))
    retry_executor = RetryExecutor()

    session_manager = SessionManager(
        client, token_store, retry_executor=retry_executor
    )
    if not await session_manager.async_is_logged_in():
        _LOGGER.warning("No stored session for entry %s", entry.entry_id)
        return False

    cache = ValueCache()
    visibility = ParameterVisibilityGateway(client, session_manager, retry_executor)
    gateway = SensorDataGateway(
        client, session_manager, visibility, cache, retry_executor=retry_executor
    )
    coordinator = MeteoDataCoordinator(hass, gateway)

    try:
        await coordinator.async_refresh()
    except Exception as err:
        _LOGGER.exception(
            "Unexpected error during setup for entry %s: %s", entry.entry_id, err
        )
        return False

    if not coordinator.last_update_success:
        _LOGGER.error(
            "Initial poll failed for entry %s: %s",
            entry.entry_id,
            coordinator.last_exception,
        )
        return False

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = MeteoRuntimeData(
        session_manager=session_manager,
        cache=cache,
        visibility=visibility,
        gateway=gateway,
        coordinator=coordinator,
    )
    _LOGGER.info(
        "Successfully setup Meteo integration for entry %s: %d stations",
        entry.entry_id,
        len(coordinator.data or {}),
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Meteo integration for entry %s", entry.entry_id)

    runtime: MeteoRuntimeData | None = hass.data.get(DOMAIN, {}).pop(
        entry.entry_id, None
    )
    if runtime is not None:
        runtime.cache.clear()
        _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Log out when the entry is deleted."""
    token_store = TokenStore(create_store(hass, _store_key(entry)))
    await token_store.async_clear()
    _LOGGER.info("Removed stored session for entry %s", entry.entry_id)
