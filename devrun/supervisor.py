"""
Process supervision for the local backends.

Each spawned backend gets a ProcessHandle that forwards its stdout/stderr
to the console sink and runs a one-shot readiness latch on one of the two
streams. Readiness is heuristic: the backends print nothing structured, so
the first chunk on the chosen stream is taken as "ready for traffic".
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from .errors import SpawnError
from .logs import EMULATOR_LOGGER, GATEWAY_LOGGER, ROOT_LOGGER
from .runtime import Backend
from .settings import Settings, settings as default_settings

CHUNK_SIZE = 4096

logger = logging.getLogger(ROOT_LOGGER)


class ProcessState(Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    STARTING = "starting"
    READY = "ready"
    EXITED = "exited"
    FAILED = "failed"


@dataclass(frozen=True)
class LaunchSpec:
    backend: Backend
    command: tuple[str, ...]
    ready_stream: str = "stdout"
    ready_grace_s: float = 0.0


def emulator_launch(port: str, settings: Settings = default_settings) -> LaunchSpec:
    return LaunchSpec(
        backend=Backend.EMULATOR,
        command=(settings.emulator_command, "--port", str(port)),
        ready_stream="stdout",
    )


def gateway_launch(settings: Settings = default_settings) -> LaunchSpec:
    # The gateway logs to stderr only; after its first line it still needs a
    # moment before the configuration API accepts requests.
    return LaunchSpec(
        backend=Backend.GATEWAY,
        command=(settings.gateway_binary_path, "--dev"),
        ready_stream="stderr",
        ready_grace_s=settings.gateway_grace_ms / 1000.0,
    )


class ProcessHandle:

    def __init__(self, spec: LaunchSpec, sink: logging.Logger | None = None):
        self.spec = spec
        self.sink = sink or logging.getLogger(
            EMULATOR_LOGGER if spec.backend is Backend.EMULATOR else GATEWAY_LOGGER
        )

        self.state = ProcessState.IDLE
        self.process: asyncio.subprocess.Process | None = None
        self.returncode: int | None = None

        loop = asyncio.get_running_loop()
        self._latched: asyncio.Future = loop.create_future()
        self._exited: asyncio.Future = loop.create_future()
        self.monitor_task: asyncio.Task | None = None

    @property
    def name(self) -> str:
        return self.spec.backend.display_name

    def attach(self, process: asyncio.subprocess.Process) -> None:
        self.process = process
        self.state = ProcessState.STARTING
        self.monitor_task = asyncio.create_task(
            self._process_monitor(), name=f"monitor-{self.spec.backend.value}"
        )

    def on_output(self, stream: str, chunk: bytes) -> None:
        text = chunk.decode("utf-8", errors="replace")
        if text.strip():
            self.sink.info(text)

        if stream == self.spec.ready_stream and self.state is ProcessState.STARTING:
            self.state = ProcessState.READY
            if not self._latched.done():
                self._latched.set_result(True)

    def on_exit(self, returncode: int) -> None:
        self.returncode = returncode
        self.state = ProcessState.EXITED
        if not self._latched.done():
            self._latched.set_result(False)
        if not self._exited.done():
            self._exited.set_result(returncode)

    async def wait_ready(self) -> bool:
        """True once the latch fired and the grace delay elapsed.

        False if the process exited without ever producing readiness output.
        """
        ready = await asyncio.shield(self._latched)
        if ready and self.spec.ready_grace_s > 0:
            await asyncio.sleep(self.spec.ready_grace_s)
        return ready

    async def wait_exit(self) -> int:
        return await asyncio.shield(self._exited)

    def is_running(self) -> bool:
        return self.process is not None and not self._exited.done()

    async def _read_stream(self, name: str, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        try:
            while True:
                chunk = await stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                self.on_output(name, chunk)
        except Exception as e:
            logger.error("%s %s reader error: %s", self.name, name, e, exc_info=True)

    async def _process_monitor(self) -> None:
        proc = self.process
        await asyncio.gather(
            self._read_stream("stdout", proc.stdout),
            self._read_stream("stderr", proc.stderr),
        )
        returncode = await proc.wait()
        if returncode == 0:
            logger.info("%s exited", self.name)
        else:
            logger.warning("%s exited with code %s", self.name, returncode)
        self.on_exit(returncode)

    async def terminate(self, timeout: float = 5.0) -> None:
        if not self.is_running():
            return

        logger.info("Stopping the %s...", self.name)
        try:
            self.process.terminate()
        except ProcessLookupError:
            # already gone; the monitor records the exit
            pass

        try:
            await asyncio.wait_for(self.wait_exit(), timeout=timeout)
            return
        except asyncio.TimeoutError:
            logger.warning("%s did not terminate, killing...", self.name)

        try:
            self.process.kill()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(self.wait_exit(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("%s could not be stopped (pid %s)", self.name, self.process.pid)


Spawner = Callable[..., Awaitable[asyncio.subprocess.Process]]


class ProcessSupervisor:
    """Spawns backend processes and keeps track of their lifetime."""

    def __init__(self, spawner: Spawner | None = None):
        self._spawner = spawner or asyncio.create_subprocess_exec
        self.handles: list[ProcessHandle] = []

    async def spawn(self, spec: LaunchSpec) -> ProcessHandle:
        """Start a backend; raises SpawnError if the process cannot be started."""
        handle = ProcessHandle(spec)
        handle.state = ProcessState.SPAWNING
        try:
            process = await self._spawner(
                *spec.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            handle.state = ProcessState.FAILED
            raise SpawnError(f"Could not start the {handle.name} ({spec.command[0]}): {e}") from e

        logger.debug("%s started with pid %s", handle.name, process.pid)
        handle.attach(process)
        self.handles.append(handle)
        return handle

    def running(self) -> list[ProcessHandle]:
        return [h for h in self.handles if h.is_running()]

    async def terminate_all(self, timeout: float = 5.0) -> None:
        """Stop every child still alive so no backend outlives the run."""
        await asyncio.gather(*(h.terminate(timeout) for h in self.running()))
