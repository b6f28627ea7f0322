"""Pytest configuration and fixtures for Meteo tests."""

import base64
import json
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from custom_components.meteo.cache import ValueCache
from custom_components.meteo.const import BASE_URL
from custom_components.meteo.models import Session
from custom_components.meteo.retry import RetryExecutor
from custom_components.meteo.session import SessionManager
from custom_components.meteo.token_store import TokenStore

STATION = "60000105"
OTHER_STATION = "60000106"
ACCESS_TOKEN = "access-token-1"
REFRESH_TOKEN = "refresh-token-1"
USER_ID = "42"


def create_test_jwt(exp_timestamp: int | None = None) -> str:
    """Create a test JWT token with optional expiration timestamp.

    Args:
        exp_timestamp: Optional expiration timestamp. If None, defaults to
            1 hour from now.

    Returns:
        A JWT token string with header, payload, and signature.

    """
    if exp_timestamp is None:
        exp_timestamp = int(datetime.now(UTC).timestamp()) + 3600

    header = {"alg": "HS256", "typ": "JWT"}
    payload = {"exp": exp_timestamp, "sub": "test_user"}

    header_encoded = (
        base64.urlsafe_b64encode(json.dumps(header).encode()).decode().rstrip("=")
    )
    payload_encoded = (
        base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")
    )

    return f"{header_encoded}.{payload_encoded}.signature"


class FakeStore:
    """In-memory stand-in for homeassistant.helpers.storage.Store."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = data
        self.async_load = AsyncMock(side_effect=self._load)
        self.async_save = AsyncMock(side_effect=self._save)
        self.async_remove = AsyncMock(side_effect=self._remove)

    async def _load(self) -> dict[str, Any] | None:
        return self.data

    async def _save(self, data: dict[str, Any]) -> None:
        self.data = dict(data)

    async def _remove(self) -> None:
        self.data = None


@pytest.fixture
def sample_session() -> Session:
    """Fixture providing a session with opaque tokens."""
    return Session(
        access_token=ACCESS_TOKEN,
        refresh_token=REFRESH_TOKEN,
        user_id=USER_ID,
        username="tester",
    )


@pytest.fixture
def fake_store(sample_session: Session) -> FakeStore:
    """Fixture providing a store that already holds a session."""
    return FakeStore(
        {
            "access_token": sample_session.access_token,
            "refresh_token": sample_session.refresh_token,
            "user_id": sample_session.user_id,
            "username": sample_session.username,
        }
    )


@pytest.fixture
def empty_store() -> FakeStore:
    """Fixture providing a store without a session."""
    return FakeStore()


@pytest.fixture
def token_store(fake_store: FakeStore) -> TokenStore:
    """Fixture providing a token store with a stored session."""
    return TokenStore(fake_store)


@pytest.fixture
def mock_sleep() -> AsyncMock:
    """Fixture providing a sleep that returns immediately."""
    return AsyncMock()


@pytest.fixture
def retry_executor(mock_sleep: AsyncMock) -> RetryExecutor:
    """Fixture providing a retry executor that does not wait."""
    return RetryExecutor(sleep=mock_sleep)


@pytest.fixture
def client() -> httpx.AsyncClient:
    """Fixture providing an HTTP client pointed at the API root."""
    return httpx.AsyncClient(base_url=BASE_URL)


@pytest.fixture
def session_manager(
    client: httpx.AsyncClient,
    token_store: TokenStore,
    retry_executor: RetryExecutor,
) -> SessionManager:
    """Fixture providing a session manager with a stored session."""
    return SessionManager(client, token_store, retry_executor=retry_executor)


@pytest.fixture
def jwt_store() -> FakeStore:
    """Fixture providing a store holding a JWT that is valid for an hour."""
    return FakeStore(
        {
            "access_token": create_test_jwt(),
            "refresh_token": REFRESH_TOKEN,
            "user_id": USER_ID,
            "username": "tester",
        }
    )


@pytest.fixture
def authorized_manager(
    client: httpx.AsyncClient,
    jwt_store: FakeStore,
    retry_executor: RetryExecutor,
) -> SessionManager:
    """Fixture providing a session manager that needs no refresh."""
    return SessionManager(client, TokenStore(jwt_store), retry_executor=retry_executor)


@pytest.fixture
def value_cache() -> ValueCache:
    """Fixture providing an empty value cache."""
    return ValueCache()


@pytest.fixture
def sample_login_response() -> dict[str, Any]:
    """Fixture providing a sample login API response."""
    return {
        "success": True,
        "data": {
            "user_id": 42,
            "access_token": ACCESS_TOKEN,
            "refresh_token": REFRESH_TOKEN,
        },
    }


@pytest.fixture
def sample_station_latest_response() -> dict[str, Any]:
    """Fixture providing latest data of one station."""
    return {
        "success": True,
        "data": {
            "station_number": STATION,
            "timestamp": 1700000000,
            "parameters": [
                {"code": "4402", "name": "Temperature", "unit": "C", "value": 21.3},
                {"code": "5402", "name": "Humidity", "unit": "%", "value": 55.0},
                {"code": "700", "name": "Pressure", "unit": "hPa", "value": None},
            ],
        },
    }


@pytest.fixture
def sample_all_latest_response() -> dict[str, Any]:
    """Fixture providing latest data of all stations."""
    return {
        "success": True,
        "data": [
            {
                "station_number": STATION,
                "custom_name": "Roof",
                "location": "Tomsk",
                "latitude": 56.46,
                "longitude": 84.96,
                "is_favorite": True,
                "timestamp": 1700000000,
                "parameters": [
                    {"code": "4402", "value": 21.3},
                    {"code": "5402", "value": 55.0},
                ],
            },
            {
                "station_number": OTHER_STATION,
                "custom_name": None,
                "location": "Field",
                "latitude": None,
                "longitude": None,
                "is_favorite": False,
                "timestamp": 1700000000,
                "parameters": [
                    {"code": "4402", "value": 18.0},
                ],
            },
        ],
    }


@pytest.fixture
def sample_parameters_response() -> dict[str, Any]:
    """Fixture providing parameters of a station with visibility flags."""
    return {
        "success": True,
        "data": [
            {
                "code": "5402",
                "name": "Humidity",
                "unit": "%",
                "description": "Relative humidity",
                "category": "air",
                "is_visible": False,
                "display_order": 2,
            },
            {
                "code": "4402",
                "name": "Temperature",
                "unit": "C",
                "description": "Air temperature",
                "category": "air",
                "is_visible": True,
                "display_order": 1,
            },
        ],
    }


@pytest.fixture
def sample_history_response() -> dict[str, Any]:
    """Fixture providing a history response in ascending order."""
    return {
        "success": True,
        "station_number": STATION,
        "parameter": "4402",
        "data": [
            {"time": 1700000000, "value": 20.0},
            {"time": 1700000600, "value": 20.5},
            {"time": 1700001200, "value": 21.0},
        ],
        "count": 3,
    }
