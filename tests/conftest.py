"""
Fixtures compartidas: sinks y relojes falsos, CLI CBS falsa y cliente HTTP de la app.
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 200 + b"\xff\xd9"

FAKE_CLI = """#!@PYTHON@
import sys
import time

args = sys.argv[1:]
with open(@LOG@, "a") as fh:
    fh.write(" ".join(args) + "\\n")

cmd = args[2]
if cmd == "type":
    print("LAN9668")
elif cmd == "sleep":
    time.sleep(30)
elif cmd == "get":
    if "name='1'" in args[3]:
        print("- traffic-class: 3")
        print("  credit-based:")
        print("    idle-slope: 5000")
elif cmd == "set":
    print("ok")
elif cmd == "delete":
    if "traffic-class='7'" in args[3]:
        sys.stderr.write("not found\\n")
        sys.exit(1)
    print("deleted")
"""


class FakeSink:
    """Sink controlable desde el test: acepta o no, cerrado o no, o falla al escribir."""

    def __init__(self, accepting=True):
        self.accepting = accepting
        self.closed = False
        self.fail = False
        self.writes = []
        self.drain_callback = None
        self.on_drain_calls = 0

    def write(self, data):
        if self.fail:
            raise ConnectionResetError("peer reset")
        self.writes.append(data)
        return self.accepting

    def on_drain(self, callback):
        self.on_drain_calls += 1
        self.drain_callback = callback

    def is_closed(self):
        return self.closed

    def drain(self):
        callback, self.drain_callback = self.drain_callback, None
        if callback is not None:
            callback()


class FakeChannel:
    def __init__(self):
        self.messages = []

    def notify(self, payload):
        self.messages.append(payload)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_cli(tmp_path):
    """CLI CBS falsa + archivo que simula el dispositivo serie. Devuelve (cli, device, log)."""
    log = tmp_path / "cli.log"
    cli = tmp_path / "fake-cli"
    cli.write_text(FAKE_CLI.replace("@PYTHON@", sys.executable).replace("@LOG@", repr(str(log))))
    os.chmod(cli, 0o755)
    device = tmp_path / "ttyACM0"
    device.touch()
    return str(cli), str(device), log


@pytest.fixture
def settings(fake_cli, tmp_path):
    cli, device, _ = fake_cli
    return Settings(
        cbs_cli_path=cli,
        cbs_devices=(str(tmp_path / "missing"), device),
        cbs_timeout_s=5.0,
        cbs_ports=2,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
