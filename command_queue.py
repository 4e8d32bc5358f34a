"""
Cola serializada de comandos: como máximo un comando contra el recurso compartido a la vez, en orden FIFO.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from device import DeviceResolver

logger = logging.getLogger(__name__)

RESOURCE_UNAVAILABLE = "resource unavailable"

Task = Callable[[str], Awaitable[Any]]


class CommandError(Exception):
    """Fallo de un comando, con el stderr de la herramienta externa si lo hay."""

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr


@dataclass
class CommandOutcome:
    success: bool
    output: Any = None
    error: str | None = None
    stderr: str | None = None
    device: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "output": self.output, "stderr": self.stderr}
        return {"success": False, "error": self.error, "stderr": self.stderr}


class CommandQueue:
    """
    Exclusión mutua asíncrona con lista de espera FIFO.

    Al terminar un comando (bien, mal o por timeout) el turno pasa directamente
    al más antiguo de la lista de espera; si no hay nadie, la cola queda libre.
    """

    def __init__(self, resolver: DeviceResolver, timeout_s: float = 15.0) -> None:
        self.resolver = resolver
        self.timeout_s = timeout_s
        self._busy = False
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def submit(self, task: Task) -> CommandOutcome:
        """Ejecuta task(device) cuando le toque el turno y devuelve su resultado."""
        device = self.resolver.resolve()
        if device is None:
            return CommandOutcome(success=False, error=RESOURCE_UNAVAILABLE)

        await self._acquire()
        try:
            return await self._run(task, device)
        finally:
            self._release()

    async def _run(self, task: Task, device: str) -> CommandOutcome:
        try:
            output = await asyncio.wait_for(task(device), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Comando en %s excedió el timeout de %.1fs", device, self.timeout_s)
            return CommandOutcome(success=False, error=f"timeout after {self.timeout_s:g}s", device=device)
        except CommandError as e:
            logger.warning("Comando en %s falló: %s", device, e)
            return CommandOutcome(success=False, error=str(e), stderr=e.stderr, device=device)
        except Exception as e:
            logger.warning("Comando en %s falló: %s", device, e)
            return CommandOutcome(success=False, error=str(e), device=device)
        return CommandOutcome(success=True, output=output, device=device)

    async def _acquire(self) -> None:
        if not self._busy and not self._waiters:
            self._busy = True
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ya recibió el turno: pasarlo al siguiente
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # El turno pasa sin liberar la bandera
                waiter.set_result(None)
                return
        self._busy = False
