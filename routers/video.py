"""
Endpoints de video: ingreso de frames (productor), stream MJPEG, snapshot y estado (consumidores).
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from protocol import MultipartFrameParser, decode_frame_payload
from sinks import StreamSink
from state import Bridge, get_bridge

logger = logging.getLogger(__name__)

router = APIRouter(tags=["video"])


class FrameUpload(BaseModel):
    frame: str = ""
    timestamp: float | None = None


@router.post("/frame")
async def post_frame(body: FrameUpload, bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Recibe un frame JPEG en base64 (o data URL) con el timestamp del productor en ms."""
    if not body.frame:
        raise HTTPException(status_code=400, detail="No frame")
    try:
        frame = decode_frame_payload(body.frame)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    stats = bridge.hub.publish(frame, body.timestamp)
    return {"status": "ok", "seq": stats.seq}


@router.post("/video/upload")
async def video_upload(request: Request, bridge: Bridge = Depends(get_bridge)) -> dict[str, str]:
    """
    Recibe stream MJPEG push (multipart/x-mixed-replace) de un productor.
    El productor mantiene la conexión abierta y envía frames continuamente.
    """
    client_host = request.client.host if request.client else "unknown"
    producer_id = f"upload:{client_host}"
    logger.info("Productor de video conectado desde %s", client_host)
    bridge.hub.bind_producer(producer_id)

    parser = MultipartFrameParser()
    frame_count = 0
    try:
        async for chunk in request.stream():
            for frame in parser.feed(chunk):
                bridge.hub.publish(frame)
                frame_count += 1
    except Exception as e:
        logger.warning("Error en video upload: %s", e)
    finally:
        bridge.hub.on_producer_disconnect(producer_id)
        logger.info("Productor de video desconectado desde %s (frames: %d)", client_host, frame_count)

    return {"status": "ok", "frames": str(frame_count)}


@router.get("/stream.mjpg")
async def video_stream(bridge: Bridge = Depends(get_bridge)) -> StreamingResponse:
    """Sirve el stream MJPEG; el id del consumidor va en X-Consumer-Id para asociarlo a /ws."""
    sink = StreamSink(high_water=bridge.settings.sink_high_water)
    consumer_id = bridge.hub.reserve_id()

    async def generate():
        # Se registra recién cuando la respuesta empieza a enviarse
        bridge.hub.register(sink, consumer_id=consumer_id)
        try:
            async for chunk in sink.chunks():
                yield chunk
        finally:
            sink.close()
            bridge.hub.unregister(consumer_id)

    return StreamingResponse(
        generate(),
        media_type="multipart/x-mixed-replace; boundary=frame",
        headers={
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Connection": "keep-alive",
            "X-Consumer-Id": str(consumer_id),
        },
    )


@router.get("/snapshot.jpg")
async def snapshot(bridge: Bridge = Depends(get_bridge)) -> Response:
    """Último frame recibido."""
    frame = bridge.hub.latest_snapshot()
    if frame is None:
        raise HTTPException(status_code=404, detail="No hay frame disponible")
    return Response(content=frame, media_type="image/jpeg", headers={"Cache-Control": "no-cache"})


@router.get("/api/status")
async def video_status(bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Estado del streaming."""
    return bridge.hub.status()


@router.get("/api/viewers")
async def video_viewers(bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Estadísticas de entrega por consumidor."""
    return {"viewers": bridge.hub.consumer_stats()}
