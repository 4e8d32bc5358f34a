"""
Tests de la fachada CBS contra una CLI falsa (script ejecutable en tmp_path).
"""

import asyncio

import pytest

from cbs import CbsClient, parse_shapers, terminate
from command_queue import RESOURCE_UNAVAILABLE, CommandQueue
from device import DeviceResolver


@pytest.fixture
def cbs(fake_cli):
    cli, device, log = fake_cli
    queue = CommandQueue(DeviceResolver([device]), timeout_s=5.0)
    return CbsClient(cli, queue, ports=2)


def calls(log):
    return log.read_text().splitlines()


def test_parse_shapers():
    output = """
- traffic-class: 2
  credit-based:
    idle-slope: 1000
- traffic-class: 6
  credit-based:
    idle-slope: 25000
"""
    assert parse_shapers(output, 4) == [
        {"port": 4, "tc": 2, "idleSlope": 1000},
        {"port": 4, "tc": 6, "idleSlope": 25000},
    ]
    assert parse_shapers("traffic-class: 1\n", 1) == []


async def test_device_type(cbs, fake_cli):
    _, device, log = fake_cli
    assert await cbs.device_type() == {"success": True, "device": "LAN9668"}
    assert calls(log) == [f"device {device} type"]


async def test_get_config_reads_every_port(cbs, fake_cli):
    _, _, log = fake_cli
    result = await cbs.get_config()
    assert result == {"success": True, "config": [{"port": 1, "tc": 3, "idleSlope": 5000}]}
    assert len(calls(log)) == 2
    assert "interface[name='2']" in calls(log)[1]


async def test_set_idle_slope(cbs, fake_cli):
    _, device, log = fake_cli
    result = await cbs.set_idle_slope([1, 2], 3, 5000)
    assert result["success"] is True
    assert [r["success"] for r in result["results"]] == [True, True]
    assert result["cliOutputs"][0]["output"].strip() == "ok"
    assert device in result["cliOutputs"][0]["cmd"]
    assert "traffic-class-shapers[traffic-class='3']/credit-based/idle-slope" in calls(log)[0]
    assert calls(log)[0].endswith(" 5000")


async def test_delete_failure_reports_stderr(cbs):
    ok = await cbs.delete_shaper(1, 0)
    assert ok["success"] is True
    assert ok["cliOutput"].strip() == "deleted"

    failed = await cbs.delete_shaper(1, 7)
    assert failed["success"] is False
    assert "código 1" in failed["error"]
    assert failed["cliOutput"].strip() == "not found"


async def test_missing_device(fake_cli, tmp_path):
    cli, _, log = fake_cli
    queue = CommandQueue(DeviceResolver([str(tmp_path / "nope")]))
    client = CbsClient(cli, queue)
    assert await client.device_type() == {"success": False, "error": RESOURCE_UNAVAILABLE}
    assert not log.exists()


async def test_missing_cli_is_a_failure_outcome(fake_cli, tmp_path):
    _, device, _ = fake_cli
    queue = CommandQueue(DeviceResolver([device]))
    client = CbsClient(str(tmp_path / "no-such-cli"), queue)
    outcome = await client.run("type")
    assert not outcome.success
    assert not queue.busy


def short_timeout_client(fake_cli, timeout_s):
    cli, device, _ = fake_cli
    return CbsClient(cli, CommandQueue(DeviceResolver([device]), timeout_s=timeout_s))


@pytest.fixture
def spawned(monkeypatch):
    """Registra los procesos creados por la fachada."""
    procs = []
    real_spawn = asyncio.create_subprocess_exec

    async def spawn(*args, **kwargs):
        proc = await real_spawn(*args, **kwargs)
        procs.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", spawn)
    return procs


async def test_timeout_kills_running_process(fake_cli, spawned):
    client = short_timeout_client(fake_cli, 0.5)
    outcome = await client.run("sleep")
    assert not outcome.success
    assert "timeout" in outcome.error
    [proc] = spawned
    assert proc.returncode is not None
    assert not client.queue.busy


async def test_timeout_during_spawn_kills_process(fake_cli, monkeypatch):
    procs = []
    real_spawn = asyncio.create_subprocess_exec

    async def slow_spawn(*args, **kwargs):
        await asyncio.sleep(0.2)
        proc = await real_spawn(*args, **kwargs)
        procs.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", slow_spawn)
    client = short_timeout_client(fake_cli, 0.05)
    outcome = await client.run("sleep")
    assert not outcome.success
    assert "timeout" in outcome.error
    [proc] = procs
    assert proc.returncode is not None


class ExitedProcess:
    returncode = 0

    def __init__(self):
        self.killed = False

    def kill(self):
        self.killed = True
        raise ProcessLookupError

    async def wait(self):
        return self.returncode


async def test_terminate_skips_exited_process():
    proc = ExitedProcess()
    await terminate(proc)
    assert not proc.killed


async def test_terminate_tolerates_vanished_process():
    proc = ExitedProcess()
    proc.returncode = None
    await terminate(proc)
    assert proc.killed
