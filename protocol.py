"""
Protocolo: framing MJPEG, decodificación de frames y validación de mensajes (señalización y CBS).
"""

import base64
import binascii
from typing import Any

BOUNDARY = b"--frame"
MIN_FRAME_BYTES = 100
SIGNAL_TYPES = {"broadcaster", "viewer", "stats", "frame"}
CBS_MAX_PORT = 12
CBS_MAX_TC = 7


def mjpeg_part(frame: bytes) -> bytes:
    """Una parte del stream multipart/x-mixed-replace con el JPEG completo."""
    return (
        BOUNDARY + b"\r\n"
        b"Content-Type: image/jpeg\r\n"
        b"Content-Length: " + str(len(frame)).encode() + b"\r\n"
        b"\r\n" + frame + b"\r\n"
    )


def decode_frame_payload(data: str) -> bytes:
    """Decodifica un frame en base64, con o sin prefijo data URL. Lanza ValueError si no es válido."""
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    try:
        frame = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"base64 inválido: {e}") from e
    if not frame:
        raise ValueError("frame vacío")
    return frame


class MultipartFrameParser:
    """
    Extrae JPEGs de un stream multipart (boundary --frame) que llega en chunks arbitrarios.
    Un frame se entrega cuando aparece el boundary siguiente.
    """

    def __init__(self, boundary: bytes = BOUNDARY, min_size: int = MIN_FRAME_BYTES) -> None:
        self.boundary = boundary
        self.min_size = min_size
        self.buffer = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        self.buffer += chunk
        frames = []
        while True:
            start_idx = self.buffer.find(self.boundary)
            if start_idx == -1:
                break

            next_idx = self.buffer.find(self.boundary, start_idx + len(self.boundary))
            if next_idx == -1:
                break

            part = self.buffer[start_idx:next_idx]
            self.buffer = self.buffer[next_idx:]

            jpeg_start = part.find(b"\r\n\r\n")
            if jpeg_start != -1:
                jpeg_data = part[jpeg_start + 4 :].rstrip(b"\r\n")
                # Partes más chicas no son frames reales
                if len(jpeg_data) > self.min_size:
                    frames.append(jpeg_data)
        return frames


def validate_signal_message(data: Any) -> tuple[bool, str | None]:
    """Valida un mensaje del canal de señalización: objeto JSON con type conocido."""
    if not isinstance(data, dict):
        return False, "el mensaje debe ser un objeto JSON"
    msg_type = data.get("type")
    if msg_type not in SIGNAL_TYPES:
        return False, f"type inválido: {msg_type!r}"
    if msg_type == "viewer" and data.get("consumer_id") is not None:
        if not _is_int(data["consumer_id"]) or data["consumer_id"] < 1:
            return False, "consumer_id debe ser un entero positivo"
    if msg_type == "frame":
        if not isinstance(data.get("frame"), str) or not data["frame"]:
            return False, "frame debe ser un string base64"
        ts = data.get("timestamp")
        if ts is not None and (isinstance(ts, bool) or not isinstance(ts, (int, float))):
            return False, "timestamp debe ser un número (ms)"
    return True, None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_port(port: Any) -> str | None:
    if not _is_int(port) or not (1 <= port <= CBS_MAX_PORT):
        return f"puerto inválido: {port!r} (debe ser 1-{CBS_MAX_PORT})"
    return None


def _validate_tc(tc: Any) -> str | None:
    if not _is_int(tc) or not (0 <= tc <= CBS_MAX_TC):
        return f"tc inválido: {tc!r} (debe ser 0-{CBS_MAX_TC})"
    return None


def validate_cbs_set(data: Any) -> tuple[bool, str | None]:
    """Valida {ports: [1-12...], tc: 0-7, idleSlope: entero > 0}."""
    if not isinstance(data, dict):
        return False, "Missing parameters"
    ports = data.get("ports")
    if not isinstance(ports, list) or not ports or data.get("tc") is None or not data.get("idleSlope"):
        return False, "Missing parameters"
    for port in ports:
        err = _validate_port(port)
        if err:
            return False, err
    err = _validate_tc(data["tc"])
    if err:
        return False, err
    if not _is_int(data["idleSlope"]) or data["idleSlope"] <= 0:
        return False, "idleSlope debe ser un entero positivo"
    return True, None


def validate_cbs_delete(data: Any) -> tuple[bool, str | None]:
    """Valida {port: 1-12, tc: 0-7}."""
    if not isinstance(data, dict) or not data.get("port") or data.get("tc") is None:
        return False, "Missing parameters"
    err = _validate_port(data["port"]) or _validate_tc(data["tc"])
    if err:
        return False, err
    return True, None
