import asyncio
import logging
import sys

import pytest

# Ensure project root is importable (so `import cli` works reliably across environments)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from devrun.api_models import ServiceDescriptor  # noqa: E402


@pytest.fixture(autouse=True)
def restore_devrun_logger():
    """setup_logging() detaches `devrun` from the root logger; undo that after each test."""
    lg = logging.getLogger("devrun")
    handlers, propagate, level = list(lg.handlers), lg.propagate, lg.level
    yield
    lg.handlers[:] = handlers
    lg.propagate = propagate
    lg.setLevel(level)


@pytest.fixture
def descriptor(tmp_path) -> ServiceDescriptor:
    return ServiceDescriptor.model_validate(
        {
            "service": "demo",
            "servicePath": str(tmp_path),
            "provider": {"memorySize": 512, "labels": {"team": "core", "tier": "backend"}},
            "functions": {
                "hello": {
                    "handler": "handler.hello",
                    "events": [{"http": {"path": "/foo", "method": "get"}}],
                },
                "listen": {
                    "handler": "src/events.listen",
                    "timeout": 10,
                    "labels": {"tier": "worker"},
                    "events": ["myEvent"],
                },
            },
        }
    )


class FakeProcess:
    """Stands in for asyncio.subprocess.Process; output is fed by the test."""

    def __init__(self, pid: int = 4242, obey_terminate: bool = True):
        self.pid = pid
        self.returncode = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.signals = []
        self.obey_terminate = obey_terminate
        self._done = asyncio.Event()

    def emit(self, stream: str, data: bytes) -> None:
        getattr(self, stream).feed_data(data)

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._done.set()

    async def wait(self) -> int:
        await self._done.wait()
        return self.returncode

    def terminate(self) -> None:
        self.signals.append("TERM")
        if self.obey_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.signals.append("KILL")
        self.exit(-9)


class FakeSpawner:
    """Replacement for asyncio.create_subprocess_exec."""

    def __init__(self, fail=(), events=None, obey_terminate=True):
        self.fail = set(fail)
        self.calls = []
        self.kwargs = []
        self.processes = {}
        self.events = events if events is not None else []
        self.obey_terminate = obey_terminate

    async def __call__(self, *cmd, **kwargs):
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        self.events.append(f"spawn:{cmd[0]}")
        if cmd[0] in self.fail:
            raise FileNotFoundError(2, "No such file or directory", cmd[0])
        proc = FakeProcess(pid=1000 + len(self.calls), obey_terminate=self.obey_terminate)
        self.processes[cmd[0]] = proc
        return proc


async def until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def spawner():
    return FakeSpawner()
