"""Per-user parameter visibility for Meteo stations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import api
from .retry import STATION_DATA_RETRY_CONFIG, RetryExecutor

if TYPE_CHECKING:
    import httpx

    from .models import ParameterVisibility
    from .session import SessionManager

_LOGGER = logging.getLogger(__name__)

# Errors that must reach the caller instead of becoming a False/count result
_PROPAGATED_ERRORS = (api.MeteoAuthError, api.MeteoPermissionError)


class ParameterVisibilityGateway:
    """Lists and toggles which parameters a user sees on a station.

    Visibility is re-fetched on every call; it is never cached because it
    can change between views.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        session_manager: SessionManager,
        retry_executor: RetryExecutor | None = None,
    ) -> None:
        """Initialize the gateway."""
        self._client = client
        self._session_manager = session_manager
        self._retry_executor = retry_executor or RetryExecutor()

    async def async_list_with_visibility(
        self, station_number: str
    ) -> list[ParameterVisibility]:
        """Return every parameter of the station with its visibility flag.

        Raises:
            MeteoAuthError: If there is no valid session.
            MeteoApiError: If the request fails.

        """

        async def _fetch(_attempt: int) -> list[ParameterVisibility]:
            return await self._session_manager.async_call_authorized(
                lambda auth_header: api.async_get_station_parameters(
                    self._client, auth_header, station_number
                )
            )

        parameters = await self._retry_executor.async_execute_with_retry(
            STATION_DATA_RETRY_CONFIG, _fetch
        )
        _LOGGER.debug(
            "Station %s has %d parameters, %d visible",
            station_number,
            len(parameters),
            sum(1 for parameter in parameters if parameter.is_visible),
        )
        return parameters

    async def async_get_visible_codes(self, station_number: str) -> list[str]:
        """Return the codes of visible parameters in display order."""
        parameters = await self.async_list_with_visibility(station_number)
        return [parameter.code for parameter in parameters if parameter.is_visible]

    async def async_is_visible(self, station_number: str, parameter_code: str) -> bool:
        """Return True if the parameter exists and is visible."""
        return parameter_code in await self.async_get_visible_codes(station_number)

    async def async_set_visibility(
        self,
        station_number: str,
        parameter_code: str,
        visible: bool,  # noqa: FBT001
    ) -> bool:
        """Show or hide one parameter.

        Returns:
            True on success, False if the station or parameter was not found
            or the request failed.

        """
        try:
            result = await self._session_manager.async_call_authorized(
                lambda auth_header: api.async_set_parameter_visibility(
                    self._client, auth_header, station_number, parameter_code, visible
                )
            )
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoNotFoundError:
            _LOGGER.debug(
                "Parameter %s or station %s not found", parameter_code, station_number
            )
            return False
        except api.MeteoApiError as err:
            _LOGGER.error("Failed to update parameter visibility: %s", err)
            return False

        _LOGGER.debug(
            "Updated parameter %s visibility to %s: %s", parameter_code, visible, result
        )
        return result

    async def async_set_multiple_visibility(
        self,
        station_number: str,
        updates: dict[str, bool],
    ) -> tuple[int, int]:
        """Apply several visibility changes in one request.

        Returns:
            Tuple of (updated, total). A failed request reports zero updated.

        """
        if not updates:
            return 0, 0

        try:
            updated, total = await self._session_manager.async_call_authorized(
                lambda auth_header: api.async_set_parameters_visibility(
                    self._client, auth_header, station_number, updates
                )
            )
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoApiError as err:
            _LOGGER.error("Failed to update multiple parameters visibility: %s", err)
            return 0, len(updates)

        _LOGGER.debug("Bulk update: %d of %d parameters updated", updated, total)
        return updated, total

    async def async_show_all(self, station_number: str) -> tuple[int, int]:
        """Make every parameter of the station visible."""
        return await self._async_set_all(station_number, visible=True)

    async def async_hide_all(self, station_number: str) -> tuple[int, int]:
        """Hide every parameter of the station."""
        return await self._async_set_all(station_number, visible=False)

    async def _async_set_all(self, station_number: str, *, visible: bool) -> tuple[int, int]:
        try:
            parameters = await self.async_list_with_visibility(station_number)
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoApiError as err:
            _LOGGER.error("Failed to list parameters of %s: %s", station_number, err)
            return 0, 0

        updates = {parameter.code: visible for parameter in parameters}
        return await self.async_set_multiple_visibility(station_number, updates)
