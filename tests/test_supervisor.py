import asyncio
import logging

import pytest

from conftest import FakeSpawner, until
from devrun.errors import SpawnError
from devrun.runtime import Backend
from devrun.settings import Settings
from devrun.supervisor import (
    LaunchSpec,
    ProcessHandle,
    ProcessState,
    ProcessSupervisor,
    emulator_launch,
    gateway_launch,
)


def test_launch_specs_use_configured_binaries(tmp_path):
    s = Settings(emulator_command="sle", gateway_dir=str(tmp_path), gateway_grace_ms=2000)

    emu = emulator_launch("4002", s)
    assert emu.command == ("sle", "--port", "4002")
    assert emu.ready_stream == "stdout"
    assert emu.ready_grace_s == 0

    gw = gateway_launch(s)
    assert gw.command == (str(tmp_path / "event-gateway"), "--dev")
    assert gw.ready_stream == "stderr"
    assert gw.ready_grace_s == 2.0


@pytest.mark.asyncio
async def test_readiness_latch_is_one_shot_without_a_process():
    handle = ProcessHandle(LaunchSpec(backend=Backend.EMULATOR, command=("sle",)))
    handle.state = ProcessState.STARTING

    handle.on_output("stderr", b"warming up")
    assert handle.state is ProcessState.STARTING

    handle.on_output("stdout", b"listening")
    assert handle.state is ProcessState.READY
    assert await handle.wait_ready() is True

    handle.on_output("stdout", b"more output")
    assert handle.state is ProcessState.READY

    handle.on_exit(0)
    assert handle.state is ProcessState.EXITED
    assert await handle.wait_exit() == 0


@pytest.mark.asyncio
async def test_emulator_first_stdout_chunk_flips_ready(spawner, caplog):
    caplog.set_level(logging.INFO, logger="devrun")
    sup = ProcessSupervisor(spawner=spawner)
    handle = await sup.spawn(emulator_launch("4002"))

    assert handle.state is ProcessState.STARTING
    assert spawner.kwargs[0]["stdout"] == asyncio.subprocess.PIPE
    assert spawner.kwargs[0]["stderr"] == asyncio.subprocess.PIPE

    proc = spawner.processes["sle"]
    proc.emit("stdout", b"Serverless Local Emulator listening on 4002\n")
    assert await asyncio.wait_for(handle.wait_ready(), 1) is True
    assert handle.state is ProcessState.READY

    proc.emit("stderr", b"some warning\n")
    await until(lambda: any("some warning" in r.getMessage() for r in caplog.records))
    assert handle.state is ProcessState.READY

    emulator_lines = [r.getMessage() for r in caplog.records if r.name == "devrun.emulator"]
    assert any("listening on 4002" in m for m in emulator_lines)

    proc.exit(0)
    assert await asyncio.wait_for(handle.wait_exit(), 1) == 0
    assert handle.state is ProcessState.EXITED


@pytest.mark.asyncio
async def test_gateway_waits_for_stderr_and_grace_delay(spawner, tmp_path):
    s = Settings(gateway_dir=str(tmp_path), gateway_grace_ms=50)
    sup = ProcessSupervisor(spawner=spawner)
    handle = await sup.spawn(gateway_launch(s))
    proc = spawner.processes[str(tmp_path / "event-gateway")]

    waiter = asyncio.create_task(handle.wait_ready())
    proc.emit("stdout", b"stdout is not the signal\n")
    await asyncio.sleep(0.02)
    assert handle.state is ProcessState.STARTING
    assert not waiter.done()

    loop = asyncio.get_running_loop()
    proc.emit("stderr", b'{"level":"info","msg":"Running in dev mode."}\n')
    await until(lambda: handle.state is ProcessState.READY)
    latched_at = loop.time()

    assert await asyncio.wait_for(waiter, 1) is True
    assert loop.time() - latched_at >= 0.04

    proc.exit(0)
    await handle.wait_exit()


@pytest.mark.asyncio
async def test_exit_before_readiness_resolves_not_ready(spawner):
    sup = ProcessSupervisor(spawner=spawner)
    handle = await sup.spawn(emulator_launch("4002"))

    spawner.processes["sle"].exit(1)

    assert await asyncio.wait_for(handle.wait_ready(), 1) is False
    assert await handle.wait_exit() == 1
    assert handle.state is ProcessState.EXITED
    assert handle.returncode == 1


@pytest.mark.asyncio
async def test_spawn_failure_raises_spawn_error():
    spawner = FakeSpawner(fail={"sle"})
    sup = ProcessSupervisor(spawner=spawner)

    with pytest.raises(SpawnError) as exc:
        await sup.spawn(emulator_launch("4002"))

    assert isinstance(exc.value.__cause__, FileNotFoundError)
    assert sup.handles == []


@pytest.mark.asyncio
async def test_terminate_all_stops_running_children(spawner, tmp_path):
    sup = ProcessSupervisor(spawner=spawner)
    emu = await sup.spawn(emulator_launch("4002"))
    gw = await sup.spawn(gateway_launch(Settings(gateway_dir=str(tmp_path))))

    await sup.terminate_all(timeout=1)

    assert emu.state is ProcessState.EXITED
    assert gw.state is ProcessState.EXITED
    assert all(p.signals == ["TERM"] for p in spawner.processes.values())
    assert sup.running() == []


@pytest.mark.asyncio
async def test_terminate_kills_a_child_that_ignores_sigterm():
    spawner = FakeSpawner(obey_terminate=False)
    sup = ProcessSupervisor(spawner=spawner)
    handle = await sup.spawn(emulator_launch("4002"))

    await sup.terminate_all(timeout=0.05)

    assert spawner.processes["sle"].signals == ["TERM", "KILL"]
    assert handle.returncode == -9


@pytest.mark.asyncio
async def test_terminate_all_skips_exited_children(spawner):
    sup = ProcessSupervisor(spawner=spawner)
    handle = await sup.spawn(emulator_launch("4002"))
    spawner.processes["sle"].exit(0)
    await handle.wait_exit()

    await sup.terminate_all(timeout=0.05)

    assert spawner.processes["sle"].signals == []
