"""Constants for the Meteo integration.

This module contains all the constants used throughout the integration,
including API endpoints, configuration keys, data limits and storage keys.
"""

from datetime import timedelta

DOMAIN = "meteo"

BASE_URL = "http://84.237.1.131:8085/api/v1"
DEFAULT_TIMEOUT = 10.0

# Out-of-range reading that means "no data" rather than an error
UNAVAILABLE_VALUE = -99.0

DEFAULT_HISTORY_LIMIT = 1000
MIN_HISTORY_LIMIT = 1
MAX_HISTORY_LIMIT = 10000

STATION_NUMBER_LENGTH = 8

TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
BEARER_PREFIX = "Bearer "

DEFAULT_POLL_INTERVAL = 30

STORAGE_VERSION = 1
STORAGE_KEY = f"{DOMAIN}.session"

CONF_BASE_URL = "base_url"
CONF_USER_ID = "user_id"

KEY_ACCESS_TOKEN = "access_token"
KEY_REFRESH_TOKEN = "refresh_token"
KEY_USER_ID = "user_id"
KEY_USERNAME = "username"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"
