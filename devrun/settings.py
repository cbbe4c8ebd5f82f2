from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_timeout(name: str) -> float | None:
    # Unset or non-positive means "no timeout".
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


@dataclass(frozen=True)
class Settings:
    # Ports (CLI options override these)
    emulator_port: str = os.getenv("DEVRUN_EMULATOR_PORT", "4002")
    gateway_api_port: str = os.getenv("DEVRUN_GATEWAY_API_PORT", "4000")
    gateway_config_port: str = os.getenv("DEVRUN_GATEWAY_CONFIG_PORT", "4001")

    # Local binaries
    emulator_command: str = os.getenv("DEVRUN_EMULATOR_COMMAND", "sle")
    emulator_npm_package: str = os.getenv("DEVRUN_EMULATOR_NPM_PACKAGE", "@serverless/emulator")
    gateway_dir: str = os.getenv(
        "DEVRUN_GATEWAY_DIR", os.path.join(os.path.expanduser("~"), ".serverless", "event-gateway")
    )
    gateway_binary_name: str = "event-gateway"
    gateway_releases_api: str = os.getenv(
        "DEVRUN_GATEWAY_RELEASES_API", "https://api.github.com/repos/serverless/event-gateway/releases/latest"
    )
    gateway_download_base: str = os.getenv(
        "DEVRUN_GATEWAY_DOWNLOAD_BASE", "https://github.com/serverless/event-gateway/releases/download"
    )

    # Readiness heuristic for the gateway: delay after its first stderr chunk.
    gateway_grace_ms: int = _env_int("DEVRUN_GATEWAY_GRACE_MS", 2000)

    # Seconds, applies to probes/deploy/register/install. None = wait forever.
    http_timeout_s: float | None = _env_timeout("DEVRUN_HTTP_TIMEOUT_S")

    # Output
    color: bool = _env_bool("DEVRUN_COLOR", True)

    # Emulator endpoints
    emulator_heartbeat_path: str = "/v0/emulator/api/utils/heartbeat"
    emulator_deploy_path: str = "/v0/emulator/api/functions"
    emulator_invoke_path: str = "/v0/emulator/api/invoke"

    # Gateway endpoints (configuration port)
    gateway_status_path: str = "/v1/status"
    gateway_configuration_path: str = "/v1/configuration"

    @property
    def gateway_binary_path(self) -> str:
        return os.path.join(self.gateway_dir, self.gateway_binary_name)


settings = Settings()


def local_root_url(port: str | int) -> str:
    return f"http://localhost:{port}"
