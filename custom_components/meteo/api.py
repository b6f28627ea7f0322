"""API client for the Meteo REST API v1.

This module provides functions to interact with the Meteo API,
including authentication, latest readings, history and parameter
visibility management.
"""

import base64
import json
import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from homeassistant.core import HomeAssistant
from homeassistant.helpers.httpx_client import create_async_httpx_client

from .const import BASE_URL, BEARER_PREFIX, DEFAULT_TIMEOUT, UNAVAILABLE_VALUE
from .models import (
    HistoryPoint,
    ParameterVisibility,
    Session,
    StationLatest,
    StationRef,
    is_valid_station_number,
)

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_SERVER_ERROR = 500


class MeteoApiError(Exception):
    """Base exception for Meteo API client errors."""


class MeteoAuthError(MeteoApiError):
    """Exception raised for authentication errors."""


class MeteoNotLoggedInError(MeteoAuthError):
    """Raised when no session is stored."""


class MeteoSessionExpiredError(MeteoAuthError):
    """Raised when the session can no longer be refreshed."""


class MeteoUnauthorizedError(MeteoAuthError):
    """Raised when the server answers a request with HTTP 401."""


class MeteoNetworkError(MeteoApiError):
    """Base exception for transport level failures."""


class MeteoConnectionError(MeteoNetworkError):
    """Raised when the server cannot be reached."""


class MeteoTimeoutError(MeteoNetworkError):
    """Raised when a request times out."""


class MeteoHttpError(MeteoNetworkError):
    """Raised for HTTP 5xx responses."""

    def __init__(self, status: int, message: str | None = None) -> None:
        """Initialize with the HTTP status code."""
        super().__init__(message or f"Request failed: {status}")
        self.status = status


class MeteoDataError(MeteoApiError):
    """Base exception for payload problems."""


class MeteoParseError(MeteoDataError):
    """Raised when a response body cannot be decoded."""


class MeteoNotFoundError(MeteoDataError):
    """Raised when a resource does not exist or is not accessible."""

    def __init__(self, resource: str, message: str | None = None) -> None:
        """Initialize with the name of the missing resource."""
        super().__init__(message or f"Not found: {resource}")
        self.resource = resource


class MeteoInvalidDataError(MeteoDataError):
    """Raised when the API reports success=false."""


class MeteoClientError(MeteoApiError):
    """Raised for non-retryable HTTP 4xx responses."""

    def __init__(self, status: int, message: str | None = None) -> None:
        """Initialize with the HTTP status code."""
        super().__init__(message or f"Request failed: {status}")
        self.status = status


class MeteoPermissionError(MeteoClientError):
    """Raised for HTTP 403 responses."""

    def __init__(self, message: str | None = None) -> None:
        """Initialize the permission error."""
        super().__init__(HTTP_FORBIDDEN, message or "Permission denied")


def create_headers(auth_header: str | None = None) -> dict[str, str]:
    """Create HTTP headers for Meteo API requests.

    Args:
        auth_header: Optional full Authorization header value.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "content-type": "application/json",
        "accept": "application/json",
    }
    if auth_header:
        headers["Authorization"] = auth_header
    return headers


def bearer(token: str) -> str:
    """Return the Authorization header value for a token."""
    return f"{BEARER_PREFIX}{token}"


def token_preview(token: str | None) -> str:
    """Return a loggable prefix of a token."""
    preview_length = 10
    if not token:
        return "No token"
    if len(token) > preview_length:
        return f"{token[:preview_length]}..."
    return token


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates authentication error."""
    return status == HTTP_UNAUTHORIZED


def is_server_error(status: int) -> bool:
    """Check if HTTP status code indicates a server side failure."""
    return status >= HTTP_SERVER_ERROR


def is_api_error(data: dict[str, Any]) -> bool:
    """Check if API response body reports a failure.

    Bodies without a "success" field are treated as successful.
    """
    return data.get("success", True) is False


def extract_error_message(data: Any, default: str) -> str:
    """Extract the error text from a {"detail"} or {"error"} body."""
    if isinstance(data, dict):
        for key in ("detail", "error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return default


def validate_response(response: httpx.Response) -> dict[str, Any]:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        MeteoUnauthorizedError: On HTTP 401.
        MeteoPermissionError: On HTTP 403.
        MeteoNotFoundError: On HTTP 404.
        MeteoClientError: On any other HTTP 4xx.
        MeteoHttpError: On HTTP 5xx.
        MeteoParseError: If the body is not a JSON object.
        MeteoInvalidDataError: If the body reports success=false.

    """
    _validate_http_status(response)
    data = _decode_json(response)
    _validate_api_status(data)
    return data


def _decode_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        parse_error = f"Invalid JSON in response: {err}"
        raise MeteoParseError(parse_error) from err

    if not isinstance(data, dict):
        parse_error = f"Unexpected response type: {type(data).__name__}"
        raise MeteoParseError(parse_error)
    return data


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _request_path(response: httpx.Response) -> str:
    try:
        return response.request.url.path
    except RuntimeError:
        # Response built without a request
        return "resource"


def _validate_http_status(response: httpx.Response) -> None:
    status = response.status_code
    if not is_http_error(status):
        return

    message = extract_error_message(_error_body(response), f"Request failed: {status}")

    if is_auth_error(status):
        raise MeteoUnauthorizedError(message)
    if status == HTTP_FORBIDDEN:
        raise MeteoPermissionError(message)
    if status == HTTP_NOT_FOUND:
        raise MeteoNotFoundError(_request_path(response), message)
    if is_server_error(status):
        raise MeteoHttpError(status, message)
    raise MeteoClientError(status, message)


def _validate_api_status(data: dict[str, Any]) -> None:
    if not is_api_error(data):
        return

    raise MeteoInvalidDataError(extract_error_message(data, "Unknown API error"))


def extract_jwt_expiry(token: str) -> datetime:
    """Extract expiration timestamp from a JWT token's 'exp' claim.

    Args:
        token: JWT token string.

    Returns:
        Expiration datetime from the JWT token.

    Raises:
        MeteoParseError: If token is not a JWT or has no 'exp' claim.

    """
    jwt_parts_count = 3
    base64_padding_mod = 4

    parts = token.split(".")
    if len(parts) != jwt_parts_count:
        error_msg = "Invalid JWT format: expected 3 parts"
        raise MeteoParseError(error_msg)

    payload_encoded = parts[1]
    padding = len(payload_encoded) % base64_padding_mod
    if padding:
        payload_encoded += "=" * (base64_padding_mod - padding)

    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_encoded).decode("utf-8"))
        exp_timestamp = payload["exp"]
        return datetime.fromtimestamp(exp_timestamp, tz=UTC)
    except (ValueError, TypeError, KeyError, OverflowError) as err:
        error_msg = f"Failed to extract expiry from JWT token: {err}"
        raise MeteoParseError(error_msg) from err


def _payload(data: dict[str, Any], operation: str) -> Any:
    payload = data.get("data")
    if payload is None:
        error_msg = f"API response data is null: {operation}"
        raise MeteoParseError(error_msg)
    return payload


def _parse_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return UNAVAILABLE_VALUE
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return UNAVAILABLE_VALUE


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _parse_timestamp(value: Any) -> int | None:
    """Return unix seconds from an int, float or ISO 8601 timestamp."""
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            if value.strip().lstrip("-").isdigit():
                return int(value)
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return int(parsed.timestamp())
    except (ValueError, OverflowError) as err:
        _LOGGER.warning("Dropping unparseable timestamp %r: %s", value, err)
        return None

    _LOGGER.warning("Dropping timestamp of unsupported type: %r", value)
    return None


def extract_session(data: dict[str, Any]) -> Session:
    """Extract the session tokens from a login response."""
    payload = _payload(data, "login")
    try:
        return Session(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            user_id=str(payload["user_id"]),
        )
    except (KeyError, TypeError) as err:
        error_msg = f"Malformed login response: {err}"
        raise MeteoParseError(error_msg) from err


def extract_access_token(data: dict[str, Any]) -> str:
    """Extract the new access token from a refresh response."""
    token = data.get("access_token")
    if not isinstance(token, str) or not token:
        error_msg = "Refresh response does not contain an access token"
        raise MeteoParseError(error_msg)
    return token


def extract_parameter_values(items: list[dict[str, Any]]) -> dict[str, float]:
    """Map parameter codes to values; missing values become the sentinel."""
    return {str(item["code"]): _parse_float(item.get("value")) for item in items}


def extract_station_latest(item: dict[str, Any]) -> StationLatest:
    """Build a StationLatest from one element of a latest payload."""
    try:
        station_number = str(item["station_number"])
        station = StationRef(
            station_number=station_number,
            custom_name=item.get("custom_name"),
            is_favorite=bool(item.get("is_favorite", False)),
            location=item.get("location"),
            latitude=_optional_float(item.get("latitude")),
            longitude=_optional_float(item.get("longitude")),
        )
        parameters = extract_parameter_values(item.get("parameters") or [])
    except (KeyError, TypeError, AttributeError, OverflowError) as err:
        error_msg = f"Malformed station payload: {err}"
        raise MeteoParseError(error_msg) from err

    if not is_valid_station_number(station_number):
        _LOGGER.warning("Unexpected station number format: %s", station_number)

    return StationLatest(
        station=station,
        parameters=parameters,
        timestamp=_parse_timestamp(item.get("timestamp")),
    )


def extract_all_latest(data: dict[str, Any]) -> list[StationLatest]:
    """Extract latest readings for every station of the user."""
    payload = _payload(data, "getLatestDataAllStations")
    if not isinstance(payload, list):
        error_msg = "Expected a list of stations"
        raise MeteoParseError(error_msg)
    return [extract_station_latest(item) for item in payload]


def extract_history(data: dict[str, Any]) -> list[HistoryPoint]:
    """Extract history points ordered by time, newest first."""
    payload = _payload(data, "getParameterHistory")
    try:
        points = [
            HistoryPoint(time=int(point["time"]), value=float(point["value"]))
            for point in payload
        ]
    except (KeyError, TypeError, ValueError, OverflowError) as err:
        error_msg = f"Malformed history payload: {err}"
        raise MeteoParseError(error_msg) from err
    points.sort(key=lambda point: point.time, reverse=True)
    return points


def extract_parameter_visibility(data: dict[str, Any]) -> list[ParameterVisibility]:
    """Extract parameters with visibility flags, in display order."""
    payload = _payload(data, "getStationParameters")
    try:
        parameters = [
            ParameterVisibility(
                code=str(item["code"]),
                name=item.get("name") or str(item["code"]),
                unit=item.get("unit"),
                category=item.get("category"),
                is_visible=bool(item.get("is_visible", True)),
                display_order=int(item.get("display_order") or 0),
                description=item.get("description"),
            )
            for item in payload
        ]
    except (KeyError, TypeError, ValueError) as err:
        error_msg = f"Malformed parameters payload: {err}"
        raise MeteoParseError(error_msg) from err
    parameters.sort(key=lambda parameter: parameter.display_order)
    return parameters


def extract_update_counts(data: dict[str, Any]) -> tuple[int, int]:
    """Extract (updated, total) counts from a bulk visibility response."""
    payload = data.get("data") if isinstance(data.get("data"), dict) else data
    try:
        return int(payload["updated"]), int(payload["total"])
    except (KeyError, TypeError, ValueError) as err:
        error_msg = f"Malformed bulk update response: {err}"
        raise MeteoParseError(error_msg) from err


def extract_result(data: dict[str, Any]) -> bool:
    """Extract result status from API response.

    Args:
        data: API response data dictionary.

    Returns:
        True if operation was successful, False otherwise.

    """
    return bool(data.get("success", False))


def create_session_client(
    hass: HomeAssistant,
    base_url: str = BASE_URL,
) -> httpx.AsyncClient:
    """Create the HTTP client for the Meteo API.

    Retries are applied per operation by the retry executor, not by the
    transport.

    Args:
        hass: Home Assistant instance.
        base_url: Root of the API, requests use paths relative to it.

    Returns:
        Configured httpx AsyncClient.

    """
    return create_async_httpx_client(
        hass,
        base_url=base_url,
        timeout=DEFAULT_TIMEOUT,
    )


async def async_request(
    session: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    auth_header: str | None = None,
    params: dict[str, Any] | None = None,
    payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Send a request and return the validated JSON body.

    Raises:
        MeteoTimeoutError: If the request times out.
        MeteoConnectionError: If the server cannot be reached.
        MeteoApiError: Any error raised by validate_response.

    """
    headers = create_headers(auth_header)
    try:
        response = await session.request(
            method,
            path,
            headers=headers,
            params=params,
            json=payload,
        )
    except httpx.TimeoutException as err:
        timeout_error = f"Timeout on {method} {path}"
        raise MeteoTimeoutError(timeout_error) from err
    except httpx.RequestError as err:
        connection_error = f"Connection error on {method} {path}: {err}"
        raise MeteoConnectionError(connection_error) from err
    return validate_response(response)


async def async_login(
    session: httpx.AsyncClient,
    username: str,
    password: str,
) -> Session:
    """Authenticate with username and password.

    Returns:
        The new session with access and refresh tokens.

    Raises:
        MeteoApiError: If the request fails or credentials are rejected.

    """
    _LOGGER.debug("Authenticating with Meteo API as %s", username)
    data = await async_request(
        session,
        "POST",
        "/auth/login",
        payload={"username": username, "password": password},
    )
    new_session = extract_session(data)
    new_session.username = username
    _LOGGER.debug("Successfully authenticated user id %s", new_session.user_id)
    return new_session


async def async_refresh_access_token(
    session: httpx.AsyncClient,
    refresh_token: str,
) -> str:
    """Exchange the refresh token for a new access token.

    The refresh token is sent as the bearer credential of this request only.
    """
    _LOGGER.debug("Refreshing access token")
    data = await async_request(
        session,
        "POST",
        "/auth/refresh",
        auth_header=bearer(refresh_token),
    )
    return extract_access_token(data)


async def async_get_latest_all_stations(
    session: httpx.AsyncClient,
    auth_header: str,
) -> list[StationLatest]:
    """Fetch latest readings for all stations of the user."""
    data = await async_request(session, "GET", "/data/latest", auth_header=auth_header)
    stations = extract_all_latest(data)
    _LOGGER.debug("Retrieved latest data for %d stations", len(stations))
    return stations


async def async_get_station_latest(
    session: httpx.AsyncClient,
    auth_header: str,
    station_number: str,
) -> StationLatest:
    """Fetch latest readings for one station."""
    data = await async_request(
        session,
        "GET",
        f"/data/{station_number}/latest",
        auth_header=auth_header,
    )
    payload = _payload(data, "getLatestStationData")
    if not isinstance(payload, dict):
        error_msg = "Expected a station object"
        raise MeteoParseError(error_msg)
    payload.setdefault("station_number", station_number)
    return extract_station_latest(payload)


async def async_get_parameter_history(  # noqa: PLR0913
    session: httpx.AsyncClient,
    auth_header: str,
    station_number: str,
    parameter_code: str,
    start_time: int | None,
    end_time: int | None,
    limit: int,
) -> list[HistoryPoint]:
    """Fetch the time series of one parameter, newest first."""
    params: dict[str, Any] = {"limit": limit}
    if start_time is not None:
        params["start_time"] = start_time
    if end_time is not None:
        params["end_time"] = end_time

    data = await async_request(
        session,
        "GET",
        f"/data/{station_number}/{parameter_code}/history",
        auth_header=auth_header,
        params=params,
    )
    points = extract_history(data)
    _LOGGER.debug(
        "Retrieved %d history points for %s/%s",
        len(points),
        station_number,
        parameter_code,
    )
    return points


async def async_get_station_parameters(
    session: httpx.AsyncClient,
    auth_header: str,
    station_number: str,
) -> list[ParameterVisibility]:
    """Fetch the parameters of a station with their visibility flags."""
    data = await async_request(
        session,
        "GET",
        f"/stations/{station_number}/parameters",
        auth_header=auth_header,
    )
    return extract_parameter_visibility(data)


async def async_set_parameter_visibility(
    session: httpx.AsyncClient,
    auth_header: str,
    station_number: str,
    parameter_code: str,
    is_visible: bool,  # noqa: FBT001
) -> bool:
    """Set the visibility of one parameter."""
    data = await async_request(
        session,
        "PATCH",
        f"/stations/{station_number}/parameters/{parameter_code}",
        auth_header=auth_header,
        payload={"is_visible": is_visible},
    )
    return extract_result(data)


async def async_set_parameters_visibility(
    session: httpx.AsyncClient,
    auth_header: str,
    station_number: str,
    updates: dict[str, bool],
) -> tuple[int, int]:
    """Set the visibility of several parameters in one request.

    Returns:
        Tuple of (updated, total) counts reported by the server.

    """
    data = await async_request(
        session,
        "PATCH",
        f"/stations/{station_number}/parameters",
        auth_header=auth_header,
        payload={
            "parameters": [
                {"code": code, "visible": visible} for code, visible in updates.items()
            ]
        },
    )
    return extract_update_counts(data)
