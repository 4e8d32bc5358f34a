"""
Hub de broadcast de frames: un productor, N consumidores con control de flujo propio.

Cada consumidor tiene su propio estado de backpressure: un cliente lento pierde
frames (drop) pero nunca frena al productor ni al resto de los clientes.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from protocol import mjpeg_part
from sinks import Sink

logger = logging.getLogger(__name__)

FPS_WINDOW_MS = 1000


class StatsChannel(Protocol):
    def notify(self, payload: dict[str, Any]) -> None: ...


def now_ms() -> float:
    return time.time() * 1000


@dataclass
class Consumer:
    id: int
    sink: Sink
    control: StatsChannel | None = None
    backpressure: bool = False
    sent_frames: int = 0
    dropped_frames: int = 0
    last_seq_sent: int = 0
    drain_armed: bool = False
    connected_at: float = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "consumer_id": self.id,
            "backpressure": self.backpressure,
            "sent_frames": self.sent_frames,
            "dropped_frames": self.dropped_frames,
            "last_seq": self.last_seq_sent,
            "has_control": self.control is not None,
            "connected_at": self.connected_at,
        }


@dataclass(frozen=True)
class FrameStats:
    seq: int
    timestamp: float
    latency_ms: float
    frame_size: int
    fps: int
    viewers: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "frame-stats",
            "seq": self.seq,
            "timestamp": self.timestamp,
            "latency_ms": self.latency_ms,
            "frame_size": self.frame_size,
            "fps": self.fps,
            "viewers": self.viewers,
        }


class FrameHub:
    """Registro de consumidores + fan-out de frames + estadísticas del stream."""

    def __init__(
        self,
        on_stats: Callable[[dict[str, Any]], None] | None = None,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._on_stats = on_stats
        self._clock = clock
        self._consumers: dict[int, Consumer] = {}
        self._next_id = 0

        self.sequence = 0
        self.latest_frame: bytes | None = None
        self.producer: str | None = None
        self.fps = 0
        self.latency_ms: float = 0
        self.frame_size = 0
        self._window_start = clock()
        self._window_count = 0

    # ---------------------------------------------------------------- consumers

    def reserve_id(self) -> int:
        """Asigna un id de consumidor sin registrarlo todavía."""
        self._next_id += 1
        return self._next_id

    def register(self, sink: Sink, control: StatsChannel | None = None, consumer_id: int | None = None) -> int:
        if consumer_id is None:
            consumer_id = self.reserve_id()
        consumer = Consumer(id=consumer_id, sink=sink, control=control, connected_at=self._clock())
        self._consumers[consumer.id] = consumer
        logger.info("Consumidor %d conectado (total: %d)", consumer.id, len(self._consumers))
        return consumer.id

    def unregister(self, consumer_id: int) -> None:
        if self._consumers.pop(consumer_id, None) is not None:
            logger.info("Consumidor %d desconectado (total: %d)", consumer_id, len(self._consumers))

    def get(self, consumer_id: int) -> Consumer | None:
        return self._consumers.get(consumer_id)

    def attach_control(self, consumer_id: int, control: StatsChannel) -> bool:
        """Asocia un canal de señalización a un consumidor para enviarle sus estadísticas."""
        consumer = self._consumers.get(consumer_id)
        if consumer is None:
            return False
        consumer.control = control
        return True

    def detach_control(self, control: StatsChannel) -> None:
        for consumer in self._consumers.values():
            if consumer.control is control:
                consumer.control = None

    @property
    def consumer_count(self) -> int:
        return len(self._consumers)

    # ----------------------------------------------------------------- producer

    def bind_producer(self, producer_id: str) -> None:
        if self.producer is not None and self.producer != producer_id:
            logger.info("Productor %s reemplazado por %s", self.producer, producer_id)
        self.producer = producer_id

    def on_producer_disconnect(self, producer_id: str | None = None) -> bool:
        """
        Limpia el snapshot y el productor asociado. Los consumidores siguen registrados.
        Si producer_id no es el productor actual (ya fue reemplazado) no hace nada.
        """
        if producer_id is not None and producer_id != self.producer:
            return False
        logger.info("Productor desconectado (era %s)", self.producer)
        self.producer = None
        self.latest_frame = None
        return True

    def latest_snapshot(self) -> bytes | None:
        return self.latest_frame

    # ------------------------------------------------------------------ publish

    def publish(self, frame: bytes, producer_timestamp: float | None = None) -> FrameStats:
        """Distribuye un frame a todos los consumidores. Nunca bloquea."""
        now = self._clock()
        self.sequence += 1
        self.latest_frame = frame
        self.frame_size = len(frame)

        if producer_timestamp is not None:
            # Reloj del productor adelantado: latencia 0, nunca negativa
            self.latency_ms = max(0, now - producer_timestamp)

        self._window_count += 1
        if now - self._window_start >= FPS_WINDOW_MS:
            self.fps = self._window_count
            self._window_count = 0
            self._window_start = now

        part = mjpeg_part(frame)
        for consumer in list(self._consumers.values()):
            self._deliver(consumer, part)

        stats = FrameStats(
            seq=self.sequence,
            timestamp=now,
            latency_ms=self.latency_ms,
            frame_size=self.frame_size,
            fps=self.fps,
            viewers=len(self._consumers),
        )
        self._emit_stats(stats)
        if self.sequence % 100 == 0:
            logger.info("Video: %d frames publicados (%d fps, %d viewers)", self.sequence, self.fps, stats.viewers)
        return stats

    def _deliver(self, consumer: Consumer, part: bytes) -> None:
        if consumer.sink.is_closed():
            self.unregister(consumer.id)
            return

        if consumer.backpressure:
            consumer.dropped_frames += 1
            return

        try:
            accepted = consumer.sink.write(part)
        except Exception as e:
            logger.warning("Error escribiendo al consumidor %d: %s", consumer.id, e)
            self.unregister(consumer.id)
            return

        if not accepted:
            consumer.backpressure = True
            if not consumer.drain_armed:
                consumer.drain_armed = True
                consumer.sink.on_drain(lambda cid=consumer.id: self._on_drain(cid))
        consumer.sent_frames += 1
        consumer.last_seq_sent = self.sequence

    def _on_drain(self, consumer_id: int) -> None:
        consumer = self._consumers.get(consumer_id)
        if consumer is None:
            return
        consumer.backpressure = False
        consumer.drain_armed = False

    def _emit_stats(self, stats: FrameStats) -> None:
        payload = stats.to_dict()
        if self._on_stats is not None:
            self._on_stats(payload)
        for consumer in self._consumers.values():
            if consumer.control is None:
                continue
            consumer.control.notify(
                {
                    **payload,
                    "type": "viewer-stats",
                    "consumer_id": consumer.id,
                    "sent_frames": consumer.sent_frames,
                    "dropped_frames": consumer.dropped_frames,
                    "last_seq": consumer.last_seq_sent,
                }
            )

    # ------------------------------------------------------------------- status

    def status(self) -> dict[str, Any]:
        return {
            "broadcasting": self.producer is not None,
            "has_frame": self.latest_frame is not None,
            "viewers": len(self._consumers),
            "sequence": self.sequence,
            "fps": self.fps,
            "latency_ms": self.latency_ms,
            "frame_size": self.frame_size,
        }

    def consumer_stats(self) -> list[dict[str, Any]]:
        return [consumer.to_dict() for consumer in self._consumers.values()]
