"""Coordinator for the Meteo integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from . import api
from .const import DEFAULT_POLL_INTERVAL, DOMAIN

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .gateway import SensorDataGateway

_LOGGER = logging.getLogger(__name__)


class MeteoDataCoordinator(DataUpdateCoordinator[dict[str, dict[str, float]]]):
    """Coordinator that polls latest readings of all user stations."""

    def __init__(
        self,
        hass: HomeAssistant,
        gateway: SensorDataGateway,
        update_interval: timedelta = timedelta(seconds=DEFAULT_POLL_INTERVAL),
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=f"{DOMAIN}_latest",
            update_interval=update_interval,
        )
        self.gateway = gateway
        self.data = {}

    async def _async_update_data(self) -> dict[str, dict[str, float]]:
        """Fetch visible latest values for every station."""
        try:
            data = await self.gateway.async_get_latest_all_stations()
        except api.MeteoAuthError as err:
            error_msg = f"Authentication error while polling stations: {err}"
            raise UpdateFailed(error_msg) from err
        except api.MeteoApiError as err:
            error_msg = f"API error while polling stations: {err}"
            raise UpdateFailed(error_msg) from err

        _LOGGER.debug("Polled latest data for %d stations", len(data))
        return data
