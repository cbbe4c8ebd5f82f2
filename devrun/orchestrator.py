from __future__ import annotations

import asyncio
import logging

from .api_models import ServiceDescriptor
from .emulator import EmulatorClient
from .errors import ContextError, DeploymentError, RegistrationError
from .gateway import GatewayClient
from .health import LivenessChecker
from .install import InstallationManager
from .logs import ROOT_LOGGER
from .projector import project_deployment, project_registration
from .runtime import Backend, Endpoints, RunState
from .settings import Settings, settings as default_settings
from .supervisor import LaunchSpec, ProcessHandle, ProcessSupervisor, emulator_launch, gateway_launch

logger = logging.getLogger(ROOT_LOGGER)


class Orchestrator:
    """Brings up the emulator and the gateway and wires the service into them.

    One run: probe -> deploy/register what is already up -> install missing
    binaries -> spawn what is not up -> deploy/register once ready -> block
    until every spawned process has exited.
    """

    def __init__(
        self,
        descriptor: ServiceDescriptor | None,
        endpoints: Endpoints,
        liveness: LivenessChecker,
        installer: InstallationManager,
        supervisor: ProcessSupervisor,
        emulator: EmulatorClient,
        gateway: GatewayClient,
        settings: Settings = default_settings,
    ):
        self.descriptor = descriptor
        self.endpoints = endpoints
        self.liveness = liveness
        self.installer = installer
        self.supervisor = supervisor
        self.emulator = emulator
        self.gateway = gateway
        self.settings = settings
        self.state = RunState()

    async def run(self) -> None:
        if self.descriptor is None:
            raise ContextError("This command can only run inside a service")

        if await self.liveness.is_running(self.emulator.heartbeat_url):
            logger.info("Local Emulator Already Running")
            self.state.mark_running(Backend.EMULATOR, True)
            await self._perform(Backend.EMULATOR)

        if await self.liveness.is_running(self.gateway.status_url):
            logger.info("Event Gateway Already Running")
            self.state.mark_running(Backend.GATEWAY, True)
            await self._perform(Backend.GATEWAY)

        for backend in Backend:
            await self._ensure_installed(backend)

        to_spawn = [b for b in Backend if not self.state.is_running(b)]
        if not to_spawn:
            return

        try:
            handles: list[ProcessHandle] = []
            for backend in to_spawn:
                logger.info("Spinning Up the %s...", backend.display_name)
                handles.append(await self.supervisor.spawn(self._launch_spec(backend)))
            await self._supervise(handles)
        finally:
            await self.supervisor.terminate_all()

    def _launch_spec(self, backend: Backend) -> LaunchSpec:
        if backend is Backend.EMULATOR:
            return emulator_launch(self.endpoints.emulator_port, self.settings)
        return gateway_launch(self.settings)

    async def _ensure_installed(self, backend: Backend) -> None:
        if self.installer.is_installed(backend):
            return
        logger.info("Installing %s...", backend.display_name)
        version = None
        if backend is Backend.GATEWAY:
            version = await self.installer.resolve_latest_version()
            logger.info("Latest Event Gateway version: %s", version)
        await self.installer.install(backend, version)
        logger.info("%s installed", backend.display_name)

    async def _perform_when_ready(self, handle: ProcessHandle) -> None:
        if not await handle.wait_ready():
            logger.warning("%s exited before it became ready", handle.name)
            return
        await self._perform(handle.spec.backend)

    async def _supervise(self, handles: list[ProcessHandle]) -> None:
        """Block until every process exits; the first setup failure aborts."""
        setups = [
            asyncio.create_task(self._perform_when_ready(h), name=f"setup-{h.spec.backend.value}") for h in handles
        ]
        exits = [asyncio.create_task(h.wait_exit(), name=f"exit-{h.spec.backend.value}") for h in handles]
        pending: set[asyncio.Task] = set(setups) | set(exits)
        try:
            while not all(t.done() for t in exits):
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for t in done:
                    if not t.cancelled() and t.exception() is not None:
                        raise t.exception()
        finally:
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _perform(self, backend: Backend) -> None:
        self.state.mark_performed(backend)
        if backend is Backend.EMULATOR:
            await self.deploy_functions()
        else:
            await self.register_functions()

    async def deploy_functions(self) -> None:
        logger.info("Deploying Functions to Local Emulator...")
        try:
            configs = project_deployment(self.descriptor)
        except ValueError as e:
            raise DeploymentError(str(e)) from e
        await self.emulator.deploy_functions(configs)
        logger.info("Functions Deployed to the Local Emulator!")

    async def register_functions(self) -> None:
        logger.info("Registering Functions to the Event Gateway...")
        try:
            config = project_registration(self.descriptor, self.endpoints.emulator, self.settings)
        except ValueError as e:
            raise RegistrationError(str(e)) from e
        await self.gateway.register(config)
        logger.info("Functions Registered in the Event Gateway!")
