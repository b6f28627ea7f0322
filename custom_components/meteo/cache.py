"""Last-known-value cache for sensor readings."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from .const import UNAVAILABLE_VALUE

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValueValidator:
    """Decides whether a reading is real data or the unavailable sentinel."""

    floor: float = UNAVAILABLE_VALUE
    allow_non_finite: bool = False

    def __call__(self, value: float) -> bool:
        """Return True if the value is a real reading."""
        if math.isnan(value):
            return self.allow_non_finite
        if math.isinf(value):
            return self.allow_non_finite and value > 0
        return value > self.floor


class ValueCache:
    """Thread-safe cache of the last valid value per (station, parameter).

    Entries live until removed explicitly, the station is removed or the
    cache is cleared on logout.
    """

    def __init__(self, validator: ValueValidator | None = None) -> None:
        """Initialize an empty cache."""
        self._validator = validator or ValueValidator()
        self._values: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def is_valid(self, value: float) -> bool:
        """Return True if value is a real reading."""
        return self._validator(value)

    def put(self, station: str, parameter: str, value: float) -> bool:
        """Store a value; invalid values are not stored.

        Returns:
            True if the value was stored.

        """
        if not self.is_valid(value):
            _LOGGER.debug(
                "Not caching invalid value for %s/%s: %s", station, parameter, value
            )
            return False
        with self._lock:
            self._values[(station, parameter)] = value
        _LOGGER.debug("Cached value for %s/%s: %s", station, parameter, value)
        return True

    def get(self, station: str, parameter: str) -> float | None:
        """Return the cached value or None."""
        with self._lock:
            return self._values.get((station, parameter))

    def remove(self, station: str, parameter: str) -> None:
        """Remove one entry if present."""
        with self._lock:
            self._values.pop((station, parameter), None)

    def remove_station(self, station: str) -> None:
        """Remove every entry of a station."""
        with self._lock:
            keys = [key for key in self._values if key[0] == station]
            for key in keys:
                del self._values[key]
        _LOGGER.debug("Removed %d cached values for station %s", len(keys), station)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            count = len(self._values)
            self._values.clear()
        _LOGGER.debug("Cleared %d cached values", count)

    def values_for_station(self, station: str) -> dict[str, float]:
        """Return parameter code to value for one station."""
        with self._lock:
            return {
                parameter: value
                for (cached_station, parameter), value in self._values.items()
                if cached_station == station
            }

    def values_for_parameter(self, parameter: str) -> dict[str, float]:
        """Return station number to value for one parameter."""
        with self._lock:
            return {
                station: value
                for (station, cached_parameter), value in self._values.items()
                if cached_parameter == parameter
            }

    def snapshot(self) -> dict[str, dict[str, float]]:
        """Return a copy of the cache grouped by station."""
        result: dict[str, dict[str, float]] = {}
        with self._lock:
            for (station, parameter), value in self._values.items():
                result.setdefault(station, {})[parameter] = value
        return result

    def __len__(self) -> int:
        """Return the number of entries."""
        with self._lock:
            return len(self._values)

    def __contains__(self, key: object) -> bool:
        """Return True if a (station, parameter) key is cached."""
        with self._lock:
            return key in self._values
