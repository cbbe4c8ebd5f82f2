from __future__ import annotations

import asyncio

import httpx

from .api_models import FunctionDeploymentConfig
from .errors import DeploymentError
from .settings import Settings, settings as default_settings


class EmulatorClient:
    """Deploys functions to a running local emulator."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
        settings: Settings = default_settings,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout_s = timeout_s
        self.settings = settings

    @property
    def heartbeat_url(self) -> str:
        return f"{self.base_url}{self.settings.emulator_heartbeat_path}"

    @property
    def deploy_url(self) -> str:
        return f"{self.base_url}{self.settings.emulator_deploy_path}"

    async def _deploy(self, client: httpx.AsyncClient, config: FunctionDeploymentConfig) -> None:
        try:
            resp = await client.post(self.deploy_url, json=config.to_payload())
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DeploymentError(f"Failed to deploy {config.function_id}: {e}") from e

    async def deploy_functions(self, configs: list[FunctionDeploymentConfig]) -> None:
        """Deploy every function concurrently; the first failure is raised."""
        if self._client is not None:
            await asyncio.gather(*(self._deploy(self._client, c) for c in configs))
            return
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            await asyncio.gather(*(self._deploy(client, c) for c in configs))
