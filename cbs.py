"""
Fachada CBS (Credit Based Shaper): operaciones de alto nivel sobre la CLI del switch,
siempre a través de la cola serializada.
"""

import asyncio
import contextlib
import logging
import re
import shlex
from typing import Any, Iterable

from command_queue import CommandError, CommandOutcome, CommandQueue

logger = logging.getLogger(__name__)

SHAPERS_PATH = (
    "/ietf-interfaces:interfaces/interface[name='{port}']"
    "/mchp-velocitysp-port:eth-qos/config/traffic-class-shapers"
)
SHAPER_PATH = SHAPERS_PATH + "[traffic-class='{tc}']"
IDLE_SLOPE_PATH = SHAPER_PATH + "/credit-based/idle-slope"

_TC_RE = re.compile(r"traffic-class:\s*(\d+)")
_IDLE_SLOPE_RE = re.compile(r"idle-slope:\s*(\d+)")


def parse_shapers(output: str, port: int) -> list[dict[str, int]]:
    """Extrae pares (traffic-class, idle-slope) de la salida YAML de la CLI."""
    configs = []
    tc = None
    idle_slope = None
    for line in output.splitlines():
        tc_match = _TC_RE.search(line)
        is_match = _IDLE_SLOPE_RE.search(line)
        if tc_match:
            tc = int(tc_match.group(1))
        if is_match:
            idle_slope = int(is_match.group(1))
        if tc is not None and idle_slope is not None:
            configs.append({"port": port, "tc": tc, "idleSlope": idle_slope})
            tc = None
            idle_slope = None
    return configs


async def terminate(proc: asyncio.subprocess.Process) -> None:
    """Mata el proceso si sigue vivo y espera a que termine."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()


class CbsClient:
    """Traduce operaciones CBS en invocaciones `<cli> device <dev> <args...>` serializadas."""

    def __init__(self, cli_path: str, queue: CommandQueue, ports: int = 12) -> None:
        self.cli_path = cli_path
        self.queue = queue
        self.ports = ports

    def command_line(self, device: str | None, *args: str) -> str:
        return shlex.join([self.cli_path, "device", device or "<none>", *args])

    async def run(self, *args: str) -> CommandOutcome:
        async def invoke(device: str) -> str:
            return await self._exec(device, *args)

        outcome = await self.queue.submit(invoke)
        if outcome.success:
            logger.info("CLI CBS ok: %s", self.command_line(outcome.device, *args))
        return outcome

    async def _exec(self, device: str, *args: str) -> str:
        spawn = asyncio.ensure_future(
            asyncio.create_subprocess_exec(
                self.cli_path,
                "device",
                device,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        )
        try:
            proc = await asyncio.shield(spawn)
        except asyncio.CancelledError:
            # Timeout durante el arranque: esperar al proceso para matarlo
            with contextlib.suppress(OSError):
                await terminate(await spawn)
            raise

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            await terminate(proc)
            raise
        err_text = stderr.decode(errors="replace")
        if proc.returncode != 0:
            raise CommandError(f"{self.cli_path} salió con código {proc.returncode}", stderr=err_text)
        return stdout.decode(errors="replace")

    async def device_type(self) -> dict[str, Any]:
        outcome = await self.run("type")
        if not outcome.success:
            return {"success": False, "error": outcome.error}
        return {"success": True, "device": outcome.output.strip()}

    async def get_config(self, ports: Iterable[int] | None = None) -> dict[str, Any]:
        if ports is None:
            ports = range(1, self.ports + 1)
        configs = []
        for port in ports:
            outcome = await self.run("get", SHAPERS_PATH.format(port=port))
            if outcome.success and outcome.output:
                configs.extend(parse_shapers(outcome.output, port))
            elif not outcome.success:
                logger.warning("No se pudo leer la config CBS del puerto %d: %s", port, outcome.error)
        return {"success": True, "config": configs}

    async def set_idle_slope(self, ports: Iterable[int], tc: int, idle_slope: int) -> dict[str, Any]:
        results = []
        cli_outputs = []
        for port in ports:
            args = ("set", IDLE_SLOPE_PATH.format(port=port, tc=tc), str(idle_slope))
            outcome = await self.run(*args)
            results.append({"port": port, "success": outcome.success, "error": outcome.error})
            cli_outputs.append(
                {
                    "port": port,
                    "cmd": self.command_line(outcome.device, *args),
                    "output": outcome.output,
                    "error": outcome.error or outcome.stderr,
                }
            )
        return {"success": True, "results": results, "cliOutputs": cli_outputs}

    async def delete_shaper(self, port: int, tc: int) -> dict[str, Any]:
        args = ("delete", SHAPER_PATH.format(port=port, tc=tc))
        outcome = await self.run(*args)
        return {
            "success": outcome.success,
            "error": outcome.error,
            "cmd": self.command_line(outcome.device, *args),
            "cliOutput": outcome.output or outcome.stderr,
        }
