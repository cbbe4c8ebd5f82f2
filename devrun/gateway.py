from __future__ import annotations

import logging

import httpx

from .api_models import GatewayConfiguration
from .errors import RegistrationError
from .logs import ROOT_LOGGER
from .settings import Settings, settings as default_settings

logger = logging.getLogger(ROOT_LOGGER)


class GatewayClient:
    """Configuration API of the local event gateway.

    Registration is always a full replace: reset wipes whatever the gateway
    holds, configure installs the new functions and subscriptions. Events and
    HTTP traffic for the registered functions go to `api_url`.
    """

    def __init__(
        self,
        api_url: str,
        config_url: str,
        client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
        settings: Settings = default_settings,
    ):
        self.api_url = api_url.rstrip("/")
        self.config_url = config_url.rstrip("/")
        self._client = client
        self.timeout_s = timeout_s
        self.settings = settings

    @property
    def status_url(self) -> str:
        return f"{self.config_url}{self.settings.gateway_status_path}"

    @property
    def configuration_url(self) -> str:
        return f"{self.config_url}{self.settings.gateway_configuration_path}"

    async def _send(self, method: str, **kwargs) -> None:
        try:
            if self._client is not None:
                resp = await self._client.request(method, self.configuration_url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    resp = await client.request(method, self.configuration_url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise RegistrationError(f"Event Gateway {method} {self.configuration_url} failed: {e}") from e

    async def reset_configuration(self) -> None:
        await self._send("DELETE")

    async def configure(self, config: GatewayConfiguration) -> None:
        await self._send("PUT", json=config.to_payload())

    async def register(self, config: GatewayConfiguration) -> None:
        """Reset, then configure. Configure starts only after reset completed."""
        await self.reset_configuration()
        await self.configure(config)
        logger.info("Event Gateway accepting events at %s", self.api_url)
