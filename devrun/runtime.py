from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from .settings import local_root_url


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Backend(Enum):
    EMULATOR = "emulator"
    GATEWAY = "gateway"

    @property
    def display_name(self) -> str:
        return "Local Emulator" if self is Backend.EMULATOR else "Event Gateway"


@dataclass(frozen=True)
class Endpoints:
    """Ports of the two local backends for this run, and their base URLs."""

    emulator_port: str
    gateway_api_port: str
    gateway_config_port: str

    @property
    def emulator(self) -> str:
        return local_root_url(self.emulator_port)

    @property
    def gateway_api(self) -> str:
        return local_root_url(self.gateway_api_port)

    @property
    def gateway_config(self) -> str:
        return local_root_url(self.gateway_config_port)


@dataclass
class BackendStatus:
    backend: Backend
    already_running: bool = False
    performed: bool = False
    performed_at: str | None = None


class RunState:
    """Per-run bookkeeping of what each backend has had done to it."""

    def __init__(self) -> None:
        self.status: dict[Backend, BackendStatus] = {b: BackendStatus(backend=b) for b in Backend}
        self.started_at = utc_now()

    def mark_running(self, backend: Backend, running: bool) -> None:
        self.status[backend].already_running = running

    def is_running(self, backend: Backend) -> bool:
        return self.status[backend].already_running

    def mark_performed(self, backend: Backend) -> None:
        """Record that deployment/registration was issued for a backend.

        Raises RuntimeError on a second call: the work is done exactly once per run.
        """
        st = self.status[backend]
        if st.performed:
            raise RuntimeError(f"{backend.display_name} already handled in this run")
        st.performed = True
        st.performed_at = utc_now()

    def pending(self) -> list[Backend]:
        return [b for b, st in self.status.items() if not st.performed]
