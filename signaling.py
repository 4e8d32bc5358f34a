"""
Canal de señalización: peers WebSocket con una cola de salida propia cada uno.
"""

import asyncio
import itertools
import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Peer:
    """Una conexión /ws. notify() nunca bloquea: si la cola está llena se descarta el mensaje más viejo."""

    def __init__(self, peer_id: str, websocket: WebSocket, outbox_size: int = 32) -> None:
        self.id = peer_id
        self.websocket = websocket
        self.role: str | None = None
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=outbox_size)

    def notify(self, payload: dict[str, Any]) -> None:
        try:
            self.outbox.put_nowait(payload)
        except asyncio.QueueFull:
            self.outbox.get_nowait()
            self.outbox.put_nowait(payload)

    async def writer(self) -> None:
        """Envía los mensajes de la cola hasta que la conexión se cae."""
        while True:
            payload = await self.outbox.get()
            try:
                await self.websocket.send_text(json.dumps(payload))
            except Exception as e:
                logger.warning("Error enviando a peer %s: %s", self.id, e)
                return


class Signaling:
    """Registro de peers conectados y broadcast de mensajes."""

    def __init__(self, outbox_size: int = 32) -> None:
        self.outbox_size = outbox_size
        self.peers: dict[str, Peer] = {}
        self._ids = itertools.count(1)

    def connect(self, websocket: WebSocket) -> Peer:
        peer = Peer(f"peer-{next(self._ids)}", websocket, self.outbox_size)
        self.peers[peer.id] = peer
        logger.info("Peer %s conectado (total: %d)", peer.id, len(self.peers))
        return peer

    def disconnect(self, peer: Peer) -> None:
        if self.peers.pop(peer.id, None) is not None:
            logger.info("Peer %s desconectado (total: %d)", peer.id, len(self.peers))

    def broadcast(self, payload: dict[str, Any], exclude: Peer | None = None) -> None:
        for peer in list(self.peers.values()):
            if peer is not exclude:
                peer.notify(payload)
