"""Resilient access to Meteo sensor readings.

Reads favour availability: transient failures are retried and, once
retries run out, the last valid cached value or the unavailable sentinel is
returned. Authentication and permission errors always propagate so the
caller can ask the user to log in again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from . import api
from .const import (
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    MIN_HISTORY_LIMIT,
    UNAVAILABLE_VALUE,
)
from .retry import SENSOR_DATA_RETRY_CONFIG, RetryConfig, RetryExecutor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

    import httpx

    from .cache import ValueCache
    from .models import HistoryPoint, StationLatest, StationRef
    from .session import SessionManager
    from .visibility import ParameterVisibilityGateway

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_PROPAGATED_ERRORS = (api.MeteoAuthError, api.MeteoPermissionError)


def clamp_history_limit(limit: int) -> int:
    """Clamp a history limit to what the server accepts."""
    return max(MIN_HISTORY_LIMIT, min(MAX_HISTORY_LIMIT, limit))


class SensorDataGateway:
    """Fetches latest values and history with retry and cache fallback."""

    def __init__(  # noqa: PLR0913
        self,
        client: httpx.AsyncClient,
        session_manager: SessionManager,
        visibility: ParameterVisibilityGateway,
        cache: ValueCache,
        retry_executor: RetryExecutor | None = None,
        retry_config: RetryConfig = SENSOR_DATA_RETRY_CONFIG,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: HTTP client for the Meteo API.
            session_manager: Source of Authorization headers.
            visibility: Decides which parameters may be surfaced.
            cache: Last-known-value cache used as fallback.
            retry_executor: Executor wrapping every read.
            retry_config: Retry policy for sensor reads.

        """
        self._client = client
        self._session_manager = session_manager
        self._visibility = visibility
        self._cache = cache
        self._retry_executor = retry_executor or RetryExecutor()
        self._retry_config = retry_config

    @property
    def cache(self) -> ValueCache:
        """Return the value cache."""
        return self._cache

    def is_unavailable(self, value: float) -> bool:
        """Return True if value is the sentinel or otherwise not a reading."""
        return not self._cache.is_valid(value)

    def clear_station(self, station_number: str) -> None:
        """Forget cached values of a removed station."""
        self._cache.remove_station(station_number)

    async def _async_fetch(self, request: Callable[[str], Awaitable[T]]) -> T:
        async def _attempt(_attempt: int) -> T:
            return await self._session_manager.async_call_authorized(request)

        return await self._retry_executor.async_execute_with_retry(
            self._retry_config, _attempt
        )

    def _fallback(self, station_number: str, parameter_code: str) -> float:
        cached = self._cache.get(station_number, parameter_code)
        if cached is not None and self._cache.is_valid(cached):
            _LOGGER.debug(
                "Using cached value for %s/%s: %s",
                station_number,
                parameter_code,
                cached,
            )
            return cached
        return UNAVAILABLE_VALUE

    def _accept(self, station_number: str, parameter_code: str, value: float) -> float:
        """Cache a fresh value, or fall back when it is not a real reading."""
        if self._cache.put(station_number, parameter_code, value):
            return value
        return self._fallback(station_number, parameter_code)

    async def _async_station_latest(self, station_number: str) -> StationLatest:
        return await self._async_fetch(
            lambda auth_header: api.async_get_station_latest(
                self._client, auth_header, station_number
            )
        )

    async def async_get_latest(self, station_number: str, parameter_code: str) -> float:
        """Return the latest value of one parameter.

        Never raises for missing data or network failures: the last valid
        cached value or UNAVAILABLE_VALUE is returned instead.

        Raises:
            MeteoAuthError: If there is no valid session.
            MeteoPermissionError: If the server denies access.

        """
        try:
            latest = await self._async_station_latest(station_number)
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoApiError as err:
            _LOGGER.warning(
                "Failed to get latest %s for station %s: %s",
                parameter_code,
                station_number,
                err,
            )
            return self._fallback(station_number, parameter_code)

        value = latest.parameters.get(parameter_code, UNAVAILABLE_VALUE)
        return self._accept(station_number, parameter_code, value)

    async def async_iter_latest(
        self, station_number: str, parameter_code: str
    ) -> AsyncIterator[float]:
        """Yield the cached value first, if any, then the network result.

        The network result is always the last value yielded.
        """
        await self._session_manager.async_require_session()

        cached = self._cache.get(station_number, parameter_code)
        if cached is not None and self._cache.is_valid(cached):
            yield cached

        yield await self.async_get_latest(station_number, parameter_code)

    async def async_get_latest_for_station(
        self,
        station_number: str,
        parameter_codes: Iterable[str],
    ) -> dict[str, float]:
        """Return latest values of several parameters with one request."""
        codes = list(parameter_codes)
        try:
            latest = await self._async_station_latest(station_number)
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoApiError as err:
            _LOGGER.warning(
                "Bulk latest data for %s failed, using cache: %s", station_number, err
            )
            return {code: self._fallback(station_number, code) for code in codes}

        return {
            code: self._accept(
                station_number,
                code,
                latest.parameters.get(code, UNAVAILABLE_VALUE),
            )
            for code in codes
        }

    async def async_get_latest_all_stations(self) -> dict[str, dict[str, float]]:
        """Return latest values for every station, visible parameters only."""
        _stations, data = await self.async_get_stations_with_latest()
        return data

    async def async_get_stations_with_latest(
        self,
    ) -> tuple[list[StationRef], dict[str, dict[str, float]]]:
        """Return stations with coordinates and their visible latest values.

        If the bulk request fails the cached values are returned with an
        empty station list.
        """
        try:
            items = await self._async_fetch(
                lambda auth_header: api.async_get_latest_all_stations(
                    self._client, auth_header
                )
            )
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoApiError as err:
            _LOGGER.warning("Failed to get latest data for all stations: %s", err)
            return [], await self._async_visible_snapshot()

        visible = await self._async_visible_codes(
            item.station.station_number for item in items
        )

        data: dict[str, dict[str, float]] = {}
        for item in items:
            station_number = item.station.station_number
            codes = visible.get(station_number)
            if codes is None:
                continue
            data[station_number] = {
                code: self._accept(station_number, code, value)
                for code, value in item.parameters.items()
                if code in codes
            }

        stations = []
        for item in items:
            if not item.station.has_location:
                _LOGGER.debug(
                    "Skipping station %s without coordinates",
                    item.station.station_number,
                )
                continue
            stations.append(item.station)

        return stations, data

    async def _async_visible_snapshot(self) -> dict[str, dict[str, float]]:
        """Return cached values restricted to currently visible parameters."""
        snapshot = self._cache.snapshot()
        visible = await self._async_visible_codes(snapshot)

        data: dict[str, dict[str, float]] = {}
        for station_number, values in snapshot.items():
            codes = visible.get(station_number)
            if codes is None:
                continue
            data[station_number] = {
                code: value for code, value in values.items() if code in codes
            }
        return data

    async def _async_visible_codes(
        self, station_numbers: Iterable[str]
    ) -> dict[str, set[str]]:
        """Fetch visible codes per station concurrently.

        A station whose lookup fails is left out; auth errors propagate.
        """
        numbers = sorted(set(station_numbers))
        results = await asyncio.gather(
            *(self._visibility.async_get_visible_codes(number) for number in numbers),
            return_exceptions=True,
        )

        visible: dict[str, set[str]] = {}
        for number, result in zip(numbers, results, strict=True):
            if isinstance(result, _PROPAGATED_ERRORS):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                _LOGGER.warning(
                    "Dropping station %s, visibility lookup failed: %s", number, result
                )
                continue
            visible[number] = set(result)
        return visible

    async def async_get_history(  # noqa: PLR0913
        self,
        station_number: str,
        parameter_code: str,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[HistoryPoint]:
        """Return the time series of a visible parameter, newest first.

        Raises:
            MeteoNotFoundError: If the parameter is not visible on the station.
            MeteoAuthError: If there is no valid session.
            MeteoClientError: On non-retryable HTTP 4xx responses.
            MeteoNetworkError: If all retries failed.

        """
        if not await self._visibility.async_is_visible(station_number, parameter_code):
            resource = f"{station_number}/{parameter_code}"
            message = (
                f"Parameter {parameter_code} is not available "
                f"for station {station_number}"
            )
            raise api.MeteoNotFoundError(resource, message)

        clamped = clamp_history_limit(limit)
        if clamped != limit:
            _LOGGER.debug("History limit %d clamped to %d", limit, clamped)

        return await self._async_fetch(
            lambda auth_header: api.async_get_parameter_history(
                self._client,
                auth_header,
                station_number,
                parameter_code,
                start_time,
                end_time,
                clamped,
            )
        )

    async def async_get_data_time_range(
        self, station_number: str, parameter_code: str
    ) -> tuple[int | None, int | None]:
        """Return (oldest, newest) timestamps of the recent history."""
        try:
            points = await self.async_get_history(station_number, parameter_code)
        except _PROPAGATED_ERRORS:
            raise
        except api.MeteoApiError as err:
            _LOGGER.warning(
                "Failed to get time range for %s/%s: %s",
                station_number,
                parameter_code,
                err,
            )
            return None, None

        if not points:
            return None, None
        return points[-1].time, points[0].time
