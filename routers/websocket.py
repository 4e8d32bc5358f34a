"""
Endpoint WebSocket /ws: señalización entre productor (broadcaster) y viewers,
estadísticas en tiempo real e ingreso de frames de baja latencia.
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from protocol import MIN_FRAME_BYTES, decode_frame_payload, validate_signal_message
from signaling import Peer
from state import Bridge, get_bridge

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(peer: Peer, message: str) -> None:
    peer.notify({"type": "error", "message": message})


def handle_message(bridge: Bridge, peer: Peer, data: dict[str, Any]) -> None:
    """Procesa un mensaje JSON ya validado."""
    msg_type = data["type"]
    hub = bridge.hub

    if msg_type == "broadcaster":
        peer.role = "broadcaster"
        hub.bind_producer(peer.id)
        logger.info("Broadcaster registrado: %s", peer.id)
        bridge.signaling.broadcast({"type": "broadcaster-status", "active": True})

    elif msg_type == "viewer":
        peer.role = "viewer"
        consumer_id = data.get("consumer_id")
        if consumer_id is not None and not hub.attach_control(consumer_id, peer):
            _error(peer, f"consumidor {consumer_id} no encontrado")
        peer.notify({"type": "broadcaster-status", "active": hub.producer is not None})

    elif msg_type == "stats":
        # Estadísticas del broadcaster para los viewers
        bridge.signaling.broadcast({**data, "type": "broadcast-stats"}, exclude=peer)

    elif msg_type == "frame":
        try:
            frame = decode_frame_payload(data["frame"])
        except ValueError as e:
            _error(peer, str(e))
            return
        hub.publish(frame, data.get("timestamp"))


@router.websocket("/ws")
async def websocket_signaling(websocket: WebSocket) -> None:
    """Endpoint de señalización. Un solo broadcaster activo (el último)."""
    bridge = get_bridge(websocket)
    await websocket.accept()
    client_host = websocket.client.host if websocket.client else "unknown"
    peer = bridge.signaling.connect(websocket)
    writer = asyncio.create_task(peer.writer())
    peer.notify({"type": "hello", "peer_id": peer.id})
    logger.info("Cliente %s conectado desde %s", peer.id, client_host)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                # Frame JPEG binario sin timestamp
                frame = message["bytes"]
                if len(frame) <= MIN_FRAME_BYTES:
                    _error(peer, "frame vacío")
                    continue
                bridge.hub.publish(frame)
                continue

            raw = message.get("text") or ""
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("JSON inválido desde %s: %s", peer.id, raw[:100])
                _error(peer, "JSON inválido")
                continue
            ok, err = validate_signal_message(data)
            if not ok:
                logger.warning("Mensaje inválido desde %s: %s", peer.id, err)
                _error(peer, err or "Mensaje inválido")
                continue
            handle_message(bridge, peer, data)
    except WebSocketDisconnect:
        pass
    finally:
        bridge.signaling.disconnect(peer)
        bridge.hub.detach_control(peer)
        writer.cancel()
        if bridge.hub.on_producer_disconnect(peer.id):
            bridge.signaling.broadcast({"type": "broadcaster-status", "active": False})
        logger.info("Cliente %s desconectado (%s)", peer.id, client_host)
