"""
Servidor FastAPI: relay MJPEG de un productor a muchos viewers + control CBS serializado.
- GET /stream.mjpg: stream MJPEG para los viewers.
- POST /frame, POST /video/upload: ingreso de frames del productor.
- GET /ws: señalización (broadcaster/viewer), estadísticas y frames de baja latencia.
- /api/cbs/*: control del switch vía CLI, un comando a la vez.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, get_settings
from routers import cbs, video, websocket
from state import create_bridge

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="MJPEG Relay + CBS Bridge")

    # CORS - permitir requests desde cualquier origen
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.bridge = create_bridge(settings)
    app.include_router(video.router)
    app.include_router(websocket.router)
    app.include_router(cbs.router)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "service": "MJPEG Relay + CBS Bridge",
            "stream": "GET /stream.mjpg",
            "snapshot": "GET /snapshot.jpg",
            "frame": "POST /frame",
            "video_upload": "POST /video/upload",
            "ws": "ws://<host>:<port>/ws",
            "status": "GET /api/status",
            "cbs": "/api/cbs/{device,config,set,delete}",
        }

    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    logger.info("Stream: http://%s:%d/stream.mjpg", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
