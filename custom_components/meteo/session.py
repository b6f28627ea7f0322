"""Session management for the Meteo API.

The session manager is the single owner of the access and refresh tokens.
Every read-refresh-write sequence runs under one asyncio lock, and callers
that queued behind a refresh reuse its outcome, so concurrent requests
never trigger more than one refresh call.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, TypeVar

from . import api
from .const import TOKEN_REFRESH_MARGIN
from .retry import AUTH_RETRY_CONFIG, RetryExecutor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

    from .models import Session
    from .token_store import TokenStore

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class SessionManager:
    """Hands out valid Authorization headers and rotates tokens."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_store: TokenStore,
        *,
        refresh_margin: timedelta = TOKEN_REFRESH_MARGIN,
        always_refresh: bool = False,
        retry_executor: RetryExecutor | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            client: HTTP client for the Meteo API.
            token_store: Durable storage for the session.
            refresh_margin: Refresh a JWT access token this long before it
                expires.
            always_refresh: Refresh on every header request regardless of
                the token expiry.
            retry_executor: Executor used for login retries.

        """
        self._client = client
        self._token_store = token_store
        self._refresh_margin = refresh_margin
        self._always_refresh = always_refresh
        self._retry_executor = retry_executor or RetryExecutor()
        self._lock = asyncio.Lock()
        # Bumped whenever the stored session changes
        self._generation = 0

    async def async_get_authorization_header(self) -> str:
        """Return "Bearer <access token>" for the current session.

        Raises:
            MeteoNotLoggedInError: If no access token is stored.
            MeteoSessionExpiredError: If the refresh token was rejected.

        """
        generation = self._generation
        async with self._lock:
            session = await self._async_load_session()

            if self._generation != generation:
                _LOGGER.debug("Session changed while waiting, reusing new token")
                return api.bearer(session.access_token)

            if not session.refresh_token or not self._needs_refresh(
                session.access_token
            ):
                return api.bearer(session.access_token)

            return await self._async_refresh(session, raise_on_transient=False)

    async def async_force_refresh(self, rejected_header: str) -> str:
        """Refresh after the server rejected rejected_header with HTTP 401.

        If another caller already rotated the token, the current header is
        returned without a second refresh call.

        Raises:
            MeteoNotLoggedInError: If no access token is stored.
            MeteoSessionExpiredError: If the session cannot be refreshed.
            MeteoNetworkError: If the refresh endpoint is unreachable.

        """
        async with self._lock:
            session = await self._async_load_session()
            current_header = api.bearer(session.access_token)
            if current_header != rejected_header:
                return current_header

            if not session.refresh_token:
                await self._async_clear()
                expired_error = "Access token rejected and no refresh token stored"
                raise api.MeteoSessionExpiredError(expired_error)

            return await self._async_refresh(session, raise_on_transient=True)

    async def async_call_authorized(
        self,
        request: Callable[[str], Awaitable[T]],
    ) -> T:
        """Call request(auth_header), refreshing once on HTTP 401.

        A second 401 after the refresh means the session is no longer
        valid: it is cleared and MeteoSessionExpiredError is raised.
        """
        auth_header = await self.async_get_authorization_header()
        try:
            return await request(auth_header)
        except api.MeteoUnauthorizedError:
            _LOGGER.debug("Request rejected with 401, refreshing access token")
            auth_header = await self.async_force_refresh(auth_header)

        try:
            return await request(auth_header)
        except api.MeteoUnauthorizedError as err:
            await self.async_expire_session()
            expired_error = "Access token rejected after refresh"
            raise api.MeteoSessionExpiredError(expired_error) from err

    async def async_expire_session(self) -> None:
        """Drop a session the server no longer accepts."""
        async with self._lock:
            await self._async_clear()
        _LOGGER.warning("Session rejected by the server, login required")

    async def async_save_session(self, session: Session) -> None:
        """Persist tokens and user id of a new session."""
        async with self._lock:
            await self._token_store.async_save(session)
            self._generation += 1
        _LOGGER.info("Session saved for user id %s", session.user_id)

    async def async_logout(self) -> None:
        """Clear all stored session fields."""
        async with self._lock:
            await self._async_clear()
        _LOGGER.info("User logged out, all session data cleared")

    async def async_require_session(self) -> None:
        """Raise MeteoNotLoggedInError if no session is stored."""
        await self._async_load_session()

    async def async_is_logged_in(self) -> bool:
        """Return True if both tokens are stored."""
        session = await self._token_store.async_load()
        return session is not None and bool(session.refresh_token)

    async def async_get_user_id(self) -> str | None:
        """Return the id of the logged in user."""
        session = await self._token_store.async_load()
        return session.user_id if session else None

    async def async_login(self, username: str, password: str) -> Session:
        """Log in with credentials and store the new session.

        Raises:
            MeteoApiError: If the login fails after retries.

        """
        session = await self._retry_executor.async_execute_with_retry(
            AUTH_RETRY_CONFIG,
            lambda _attempt: api.async_login(self._client, username, password),
        )
        await self.async_save_session(session)
        return session

    async def _async_load_session(self) -> Session:
        session = await self._token_store.async_load()
        if session is None:
            _LOGGER.debug("No access token found")
            not_logged_in = "Not logged in"
            raise api.MeteoNotLoggedInError(not_logged_in)
        return session

    async def _async_clear(self) -> None:
        await self._token_store.async_clear()
        self._generation += 1

    def _needs_refresh(self, access_token: str) -> bool:
        if self._always_refresh:
            return True
        try:
            expire_at = api.extract_jwt_expiry(access_token)
        except api.MeteoParseError:
            # Opaque token, expiry unknown
            return True
        return datetime.now(UTC) >= expire_at - self._refresh_margin

    async def _async_refresh(self, session: Session, *, raise_on_transient: bool) -> str:
        """Refresh the access token. Must be called with the lock held."""
        try:
            access_token = await api.async_refresh_access_token(
                self._client, session.refresh_token
            )
        except api.MeteoParseError as err:
            return self._transient_failure(session, err, raise_on_transient)
        except (api.MeteoAuthError, api.MeteoClientError, api.MeteoDataError) as err:
            _LOGGER.warning("Refresh token rejected, clearing session: %s", err)
            await self._async_clear()
            expired_error = "Session expired, login required"
            raise api.MeteoSessionExpiredError(expired_error) from err
        except api.MeteoNetworkError as err:
            return self._transient_failure(session, err, raise_on_transient)

        await self._token_store.async_update_access_token(access_token)
        self._generation += 1
        _LOGGER.debug("Access token refreshed: %s", api.token_preview(access_token))
        return api.bearer(access_token)

    def _transient_failure(
        self,
        session: Session,
        err: api.MeteoApiError,
        raise_on_transient: bool,  # noqa: FBT001
    ) -> str:
        self._generation += 1
        if raise_on_transient:
            raise err
        _LOGGER.warning("Token refresh failed, using existing access token: %s", err)
        return api.bearer(session.access_token)
