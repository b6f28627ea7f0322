"""Bounded retry with backoff for Meteo API operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from . import api

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_HTTP_CODES = frozenset({500, 502, 503, 504})


class ErrorKind(Enum):
    """Classification of a failed attempt."""

    AUTH = "auth"
    CONNECTIVITY = "connectivity"
    HTTP = "http"
    PARSE = "parse"
    CLIENT = "client"
    DATA = "data"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RetryConfig:
    """Retry behaviour for one call site. Delays are in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0
    use_exponential_backoff: bool = False
    backoff_multiplier: float = 2.0
    retryable_http_codes: frozenset[int] = field(
        default=DEFAULT_RETRYABLE_HTTP_CODES
    )
    retry_on_connectivity_error: bool = True
    retry_on_parse_error: bool = False

    def __post_init__(self) -> None:
        """Validate the configuration."""
        if self.max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {self.max_attempts}"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "delays must not be negative"
            raise ValueError(msg)
        if self.backoff_multiplier < 1:
            msg = f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            raise ValueError(msg)


SENSOR_DATA_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=5.0,
    use_exponential_backoff=True,
    backoff_multiplier=2.0,
    retry_on_parse_error=True,
)

STATION_DATA_RETRY_CONFIG = RetryConfig(
    max_attempts=2,
    base_delay=0.5,
    max_delay=2.0,
    use_exponential_backoff=True,
)

AUTH_RETRY_CONFIG = RetryConfig(
    max_attempts=2,
    base_delay=0.5,
    max_delay=1.0,
    backoff_multiplier=1.5,
)


def classify_error(err: BaseException) -> ErrorKind:
    """Classify an exception raised by an attempt."""
    if isinstance(err, api.MeteoAuthError):
        return ErrorKind.AUTH
    if isinstance(err, api.MeteoHttpError):
        return ErrorKind.HTTP
    if isinstance(err, api.MeteoNetworkError):
        return ErrorKind.CONNECTIVITY
    if isinstance(err, api.MeteoParseError):
        return ErrorKind.PARSE
    if isinstance(err, api.MeteoClientError):
        return ErrorKind.CLIENT
    if isinstance(err, api.MeteoDataError):
        return ErrorKind.DATA
    return ErrorKind.UNKNOWN


def should_retry(err: BaseException, config: RetryConfig) -> bool:
    """Return True if the error is eligible for another attempt."""
    kind = classify_error(err)
    if kind is ErrorKind.HTTP:
        return err.status in config.retryable_http_codes
    if kind is ErrorKind.CONNECTIVITY:
        return config.retry_on_connectivity_error
    if kind is ErrorKind.PARSE:
        return config.retry_on_parse_error
    # Auth errors must reach the caller untouched
    return False


def delay_for_attempt(config: RetryConfig, attempt: int) -> float:
    """Return the delay in seconds after the given zero-based attempt."""
    if not config.use_exponential_backoff:
        return config.base_delay
    return min(
        config.max_delay,
        config.base_delay * config.backoff_multiplier**attempt,
    )


class RetryExecutor:
    """Runs async operations with bounded retry and backoff."""

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            sleep: Coroutine function used to wait between attempts.

        """
        self._sleep = sleep

    async def async_execute_with_retry(
        self,
        config: RetryConfig,
        operation: Callable[[int], Awaitable[T]],
    ) -> T:
        """Run operation(attempt) until it succeeds or attempts run out.

        Returns:
            The value of the first successful attempt.

        Raises:
            Exception: The last error when it is not retryable or when all
                attempts failed.

        """
        for attempt in range(config.max_attempts):
            try:
                return await operation(attempt)
            except Exception as err:
                if not should_retry(err, config):
                    _LOGGER.debug(
                        "Attempt %d failed with non-retryable %s: %s",
                        attempt + 1,
                        classify_error(err).value,
                        err,
                    )
                    raise

                if attempt == config.max_attempts - 1:
                    _LOGGER.warning(
                        "All %d attempts failed, last error: %s",
                        config.max_attempts,
                        err,
                    )
                    raise

                delay = delay_for_attempt(config, attempt)
                _LOGGER.debug(
                    "Attempt %d/%d failed (%s), retrying in %.2fs",
                    attempt + 1,
                    config.max_attempts,
                    err,
                    delay,
                )
                await self._sleep(delay)

        # max_attempts >= 1 is enforced by RetryConfig
        msg = "retry loop exited without result"
        raise RuntimeError(msg)

    async def async_execute_with_fallback(
        self,
        fallback: T,
        config: RetryConfig,
        operation: Callable[[int], Awaitable[T]],
    ) -> T:
        """Run operation with retries and return fallback on any failure."""
        try:
            return await self.async_execute_with_retry(config, operation)
        except Exception as err:  # noqa: BLE001
            _LOGGER.warning("Using fallback value after error: %s", err)
            return fallback
