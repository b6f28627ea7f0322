"""
Configuration flow for the Meteo integration.

This module logs the user in through Home Assistant's config flow system
and stores the resulting session tokens in the integration's token store.
"""

import logging
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME

from . import api
from .const import (
    BASE_URL,
    CONF_BASE_URL,
    CONF_USER_ID,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
)
from .token_store import TokenStore, create_store

_LOGGER = logging.getLogger(__name__)


class MeteoConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for the Meteo integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing username and password.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            username = user_input[CONF_USERNAME]
            password = user_input[CONF_PASSWORD]
            base_url = user_input.get(CONF_BASE_URL) or BASE_URL

            try:
                client = api.create_session_client(self.hass, base_url)
                session = await api.async_login(client, username, password)
                _LOGGER.info("Successfully authenticated with Meteo API")

            except (api.MeteoAuthError, api.MeteoClientError, api.MeteoInvalidDataError) as err:
                _LOGGER.warning(
                    "Authentication failed (%s): %s", ERROR_INVALID_AUTH, err
                )
                errors["base"] = ERROR_INVALID_AUTH
            except api.MeteoTimeoutError:
                _LOGGER.exception("Timeout error (%s)", ERROR_TIMEOUT)
                errors["base"] = ERROR_TIMEOUT
            except api.MeteoNetworkError:
                _LOGGER.exception("Connection error (%s)", ERROR_CANNOT_CONNECT)
                errors["base"] = ERROR_CANNOT_CONNECT
            except api.MeteoApiError:
                _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
                errors["base"] = ERROR_API_ERROR
            except Exception:
                _LOGGER.exception(
                    "Unexpected error during authentication (%s)",
                    ERROR_UNKNOWN,
                )
                errors["base"] = ERROR_UNKNOWN

            else:
                unique_id = username.lower()
                await self.async_set_unique_id(unique_id)
                self._abort_if_unique_id_configured()

                token_store = TokenStore(create_store(self.hass, unique_id))
                await token_store.async_save(session)

                return self.async_create_entry(
                    title=f"Meteo ({username})",
                    data={
                        CONF_USERNAME: username,
                        CONF_BASE_URL: base_url,
                        CONF_USER_ID: session.user_id,
                    },
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_USERNAME): str,
                    vol.Required(CONF_PASSWORD): str,
                    vol.Optional(CONF_BASE_URL, default=BASE_URL): str,
                }
            ),
            errors=errors,
        )
