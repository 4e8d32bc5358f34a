#!/usr/bin/env python3
"""
Simulador de broadcaster por WebSocket.
Se conecta a /ws, se registra como broadcaster y envía JPEGs en loop (base64 + timestamp en ms)
al FPS pedido. Muestra por consola las estadísticas que devuelve el servidor.
"""

import argparse
import asyncio
import base64
import itertools
import json
import logging
import sys
import time
from pathlib import Path

import websockets

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

RECONNECT_DELAY_S = 10
DEFAULT_URI = "ws://localhost:3000/ws"


def load_frames(paths: list[str]) -> list[str]:
    """Lee los JPEGs (archivos o directorios) y los devuelve en base64."""
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix.lower() in (".jpg", ".jpeg")))
        else:
            files.append(path)
    return [base64.b64encode(p.read_bytes()).decode() for p in files]


def frame_message(frame_b64: str) -> str:
    return json.dumps({"type": "frame", "frame": frame_b64, "timestamp": time.time() * 1000})


async def _print_stats(ws) -> None:
    async for raw in ws:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            continue
        if data.get("type") == "frame-stats" and data["seq"] % 30 == 0:
            logger.info(
                "seq=%d fps=%d latencia=%.1fms viewers=%d",
                data["seq"],
                data["fps"],
                data["latency_ms"],
                data["viewers"],
            )
        elif data.get("type") == "error":
            logger.warning("Servidor: %s", data.get("message"))


async def run_simulator(uri: str, frames: list[str], fps: float, reconnect: bool) -> None:
    interval = 1.0 / fps
    total_frames = 0

    while True:
        try:
            logger.info("Conectando a %s ...", uri)
            async with websockets.connect(uri, max_size=None) as ws:
                await ws.send(json.dumps({"type": "broadcaster"}))
                logger.info("Conectado como broadcaster. Enviando %d frame(s) a %.1f fps", len(frames), fps)
                reader = asyncio.create_task(_print_stats(ws))
                try:
                    for frame in itertools.cycle(frames):
                        await ws.send(frame_message(frame))
                        total_frames += 1
                        if total_frames % 100 == 0:
                            logger.info("[#%d] frames enviados", total_frames)
                        await asyncio.sleep(interval)
                finally:
                    reader.cancel()
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("Conexión cerrada: %s", e)
        except OSError as e:
            logger.warning("Error de conexión: %s", e)
        if not reconnect:
            break
        logger.info("Reconectando en %s s...", RECONNECT_DELAY_S)
        await asyncio.sleep(RECONNECT_DELAY_S)


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulador de broadcaster MJPEG por WebSocket.")
    parser.add_argument("frames", nargs="+", help="Archivos JPEG o directorios con JPEGs")
    parser.add_argument(
        "--uri",
        default=DEFAULT_URI,
        help=f"URI del endpoint /ws (default: {DEFAULT_URI})",
    )
    parser.add_argument("--fps", type=float, default=15.0, help="Frames por segundo (default: 15)")
    parser.add_argument(
        "--no-reconnect",
        action="store_true",
        help="No reconectar tras desconexión (por defecto reconecta a los 10 s)",
    )
    args = parser.parse_args()
    frames = load_frames(args.frames)
    if not frames:
        parser.error("no se encontraron JPEGs")
    asyncio.run(run_simulator(args.uri, frames, args.fps, reconnect=not args.no_reconnect))


if __name__ == "__main__":
    main()
    sys.exit(0)
