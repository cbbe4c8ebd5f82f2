from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

from devrun.emulator import EmulatorClient
from devrun.errors import DevRunError
from devrun.gateway import GatewayClient
from devrun.health import LivenessChecker
from devrun.install import InstallationManager
from devrun.logs import ROOT_LOGGER, setup_logging
from devrun.orchestrator import Orchestrator
from devrun.runtime import Endpoints
from devrun.service import load_service
from devrun.settings import settings
from devrun.supervisor import ProcessSupervisor

logger = logging.getLogger(ROOT_LOGGER)


def _port(value: str) -> str:
    if not value.isdigit() or not 1 <= int(value) <= 65535:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="devrun", description="Local development orchestrator")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="cmd", required=True)

    s_run = sub.add_parser("run", help="Runs the Event Gateway and the Local Emulator")
    s_run.add_argument("-e", "--eport", type=_port, default=settings.gateway_api_port, help="The Event Gateway API port")
    # -c, not -e: both gateway ports need their own shortcut
    s_run.add_argument(
        "-c", "--cport", type=_port, default=settings.gateway_config_port, help="The Event Gateway configuration port"
    )
    s_run.add_argument("-l", "--lport", type=_port, default=settings.emulator_port, help="The Local Emulator port")
    s_run.add_argument("--service-path", default=None, help="Service root (default: current directory)")
    return p


def endpoints_from_args(args: argparse.Namespace) -> Endpoints:
    return Endpoints(emulator_port=args.lport, gateway_api_port=args.eport, gateway_config_port=args.cport)


def build_orchestrator(args: argparse.Namespace) -> Orchestrator:
    descriptor = load_service(args.service_path or os.getcwd())
    endpoints = endpoints_from_args(args)
    timeout = settings.http_timeout_s
    return Orchestrator(
        descriptor=descriptor,
        endpoints=endpoints,
        liveness=LivenessChecker(timeout_s=timeout),
        installer=InstallationManager(settings),
        supervisor=ProcessSupervisor(),
        emulator=EmulatorClient(endpoints.emulator, timeout_s=timeout, settings=settings),
        gateway=GatewayClient(endpoints.gateway_api, endpoints.gateway_config, timeout_s=timeout, settings=settings),
        settings=settings,
    )


STOP_SIGNALS = tuple(s for s in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if s is not None)


async def _run(args: argparse.Namespace) -> signal.Signals | None:
    """Run the orchestrator; returns the signal that stopped it, if any.

    A stop signal cancels the run, which tears the spawned backends down
    before the process exits.
    """
    orchestrator = build_orchestrator(args)
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(orchestrator.run())
    received: list[signal.Signals] = []

    def _stop(sig: signal.Signals) -> None:
        # a second signal must not interrupt the teardown started by the first
        if received:
            return
        logger.info("Received %s, stopping...", sig.name)
        received.append(sig)
        task.cancel()

    for sig in STOP_SIGNALS:
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _stop, sig)
    try:
        await task
    except asyncio.CancelledError:
        if not received:
            raise
    finally:
        for sig in STOP_SIGNALS:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)
    return received[0] if received else None


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.cmd == "run":
        try:
            stopped_by = asyncio.run(_run(args))
        except DevRunError as e:
            logger.error("%s", e)
            return 1
        except KeyboardInterrupt:
            logger.info("Stopped")
            return 130
        if stopped_by is not None:
            return 128 + int(stopped_by)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
