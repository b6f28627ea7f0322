"""Data models for the Meteo integration."""

from dataclasses import dataclass, field

from .const import STATION_NUMBER_LENGTH


def is_valid_station_number(station_number: str) -> bool:
    """Return True for an 8-digit numeric station number."""
    return len(station_number) == STATION_NUMBER_LENGTH and station_number.isdigit()


@dataclass
class Session:
    """Authenticated session held by the session manager."""

    access_token: str
    refresh_token: str
    user_id: str
    username: str | None = None


@dataclass(frozen=True)
class StationRef:
    """A station the current user has access to.

    Attributes:
        station_number: 8-digit numeric identifier.
        custom_name: Name chosen by the user, if any.
        is_favorite: Whether the user marked the station as favorite.
        location: Free-form location description.
        latitude: Latitude in degrees, if known.
        longitude: Longitude in degrees, if known.

    """

    station_number: str
    custom_name: str | None = None
    is_favorite: bool = False
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def display_name(self) -> str:
        """Return the custom name, falling back to the station number."""
        return self.custom_name or self.station_number

    @property
    def has_location(self) -> bool:
        """Return True when both coordinates are known."""
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True)
class ParameterVisibility:
    """Per-user visibility of one parameter on one station."""

    code: str
    name: str
    unit: str | None
    category: str | None
    is_visible: bool
    display_order: int
    description: str | None = None


@dataclass(frozen=True, slots=True)
class HistoryPoint:
    """One time-series sample, time in unix seconds."""

    time: int
    value: float


@dataclass(slots=True)
class StationLatest:
    """Latest readings reported for a station."""

    station: StationRef
    parameters: dict[str, float] = field(default_factory=dict)
    timestamp: int | None = None
