"""
Sinks de salida para el hub: buffer acotado que alimenta un StreamingResponse MJPEG.
"""

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable, Protocol

logger = logging.getLogger(__name__)


class SinkClosed(Exception):
    """Se intentó escribir en un sink cerrado."""


class Sink(Protocol):
    def write(self, data: bytes) -> bool: ...
    def on_drain(self, callback: Callable[[], None]) -> None: ...
    def is_closed(self) -> bool: ...


class StreamSink:
    """
    Sink con buffer en memoria, consumido por el generador de la respuesta HTTP.

    write() nunca bloquea: el chunk queda en el buffer y devuelve False cuando el
    buffer llegó a high_water (el cliente no está leyendo lo suficientemente rápido).
    on_drain() guarda un único callback que se dispara una vez cuando el buffer se vacía.
    """

    def __init__(self, high_water: int = 3) -> None:
        self.high_water = max(1, high_water)
        self._chunks: deque[bytes] = deque()
        self._ready = asyncio.Event()
        self._drain_callback: Callable[[], None] | None = None
        self._closed = False

    def write(self, data: bytes) -> bool:
        if self._closed:
            raise SinkClosed("sink cerrado")
        self._chunks.append(data)
        self._ready.set()
        return len(self._chunks) < self.high_water

    def on_drain(self, callback: Callable[[], None]) -> None:
        self._drain_callback = callback

    def is_closed(self) -> bool:
        return self._closed

    def buffered(self) -> int:
        return len(self._chunks)

    def close(self) -> None:
        self._closed = True
        self._chunks.clear()
        self._drain_callback = None
        self._ready.set()

    def _drained(self) -> None:
        callback = self._drain_callback
        self._drain_callback = None
        if callback is not None:
            callback()

    async def chunks(self) -> AsyncIterator[bytes]:
        """Entrega los chunks en orden hasta que el sink se cierra."""
        try:
            while True:
                if not self._chunks:
                    if self._closed:
                        return
                    self._ready.clear()
                    await self._ready.wait()
                    continue
                chunk = self._chunks.popleft()
                if not self._chunks:
                    self._drained()
                yield chunk
        finally:
            self.close()
