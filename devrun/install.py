from __future__ import annotations

import asyncio
import io
import logging
import os
import platform
import shutil
import stat
import tarfile
from typing import Awaitable, Callable

import requests

from .errors import InstallationError
from .logs import ROOT_LOGGER
from .runtime import Backend
from .settings import Settings, settings as default_settings

logger = logging.getLogger(ROOT_LOGGER)

_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}


def gateway_asset_name(version: str, system: str | None = None, machine: str | None = None) -> str:
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    arch = _ARCH.get(machine, machine)
    return f"event-gateway_{version.lstrip('v')}_{system}_{arch}.tar.gz"


async def _run_command(*cmd: str) -> int:
    proc = await asyncio.create_subprocess_exec(*cmd)
    return await proc.wait()


class InstallationManager:
    """Locates the backend binaries and installs the missing ones."""

    def __init__(
        self,
        settings: Settings = default_settings,
        session: requests.Session | None = None,
        which: Callable[[str], str | None] = shutil.which,
        run_command: Callable[..., Awaitable[int]] = _run_command,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.which = which
        self.run_command = run_command

    def is_installed(self, backend: Backend) -> bool:
        if backend is Backend.EMULATOR:
            return self.which(self.settings.emulator_command) is not None
        return os.path.isfile(self.settings.gateway_binary_path)

    async def install(self, backend: Backend, version: str | None = None) -> None:
        if backend is Backend.EMULATOR:
            await self._install_emulator()
            return
        if not version:
            raise InstallationError("A version is required to install the Event Gateway")
        await asyncio.to_thread(self._install_gateway, version)

    async def resolve_latest_version(self) -> str:
        return await asyncio.to_thread(self._latest_gateway_version)

    # --- emulator ---

    async def _install_emulator(self) -> None:
        cmd = ("npm", "install", "--global", self.settings.emulator_npm_package)
        try:
            code = await self.run_command(*cmd)
        except OSError as e:
            raise InstallationError(f"Could not run '{' '.join(cmd)}': {e}") from e
        if code != 0:
            raise InstallationError(f"'{' '.join(cmd)}' exited with code {code}")

    # --- gateway ---

    def _latest_gateway_version(self) -> str:
        try:
            r = self.session.get(self.settings.gateway_releases_api, timeout=self.settings.http_timeout_s)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise InstallationError(f"Could not resolve the latest Event Gateway version: {e}") from e

        version = data.get("tag_name") if isinstance(data, dict) else None
        if not version:
            raise InstallationError("Could not resolve the latest Event Gateway version: no release tag")
        return str(version)

    def _install_gateway(self, version: str) -> None:
        asset = gateway_asset_name(version)
        url = f"{self.settings.gateway_download_base}/{version}/{asset}"
        logger.debug("Downloading %s", url)
        try:
            r = self.session.get(url, timeout=self.settings.http_timeout_s)
            r.raise_for_status()
        except requests.RequestException as e:
            raise InstallationError(f"Could not download Event Gateway {version}: {e}") from e

        target = self.settings.gateway_binary_path
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with tarfile.open(fileobj=io.BytesIO(r.content), mode="r:gz") as tar:
                member = next(
                    (m for m in tar.getmembers() if m.isfile() and os.path.basename(m.name) == self.settings.gateway_binary_name),
                    None,
                )
                if member is None:
                    raise InstallationError(f"{asset} does not contain '{self.settings.gateway_binary_name}'")
                src = tar.extractfile(member)
                with open(target, "wb") as out:
                    shutil.copyfileobj(src, out)
            mode = os.stat(target).st_mode
            os.chmod(target, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except (OSError, tarfile.TarError) as e:
            raise InstallationError(f"Could not install Event Gateway {version}: {e}") from e
