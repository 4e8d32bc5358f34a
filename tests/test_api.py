"""
Tests de la API HTTP y del canal /ws con TestClient.
"""

import asyncio
import base64

from conftest import JPEG, FakeSink
from routers.video import video_stream
from state import create_bridge


def b64(frame=JPEG):
    return base64.b64encode(frame).decode()


def hub_of(client):
    return client.app.state.bridge.hub


class TestVideo:
    def test_root(self, client):
        assert client.get("/").json()["stream"] == "GET /stream.mjpg"

    def test_frame_ingress_and_snapshot(self, client):
        assert client.get("/snapshot.jpg").status_code == 404

        resp = client.post("/frame", json={"frame": "data:image/jpeg;base64," + b64(), "timestamp": 1})
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "seq": 1}

        snap = client.get("/snapshot.jpg")
        assert snap.status_code == 200
        assert snap.headers["content-type"] == "image/jpeg"
        assert snap.content == JPEG

        status = client.get("/api/status").json()
        assert status["sequence"] == 1
        assert status["has_frame"] is True
        assert status["frame_size"] == len(JPEG)

    def test_frame_rejects_bad_payloads(self, client):
        assert client.post("/frame", json={}).status_code == 400
        assert client.post("/frame", json={"frame": "%%%"}).status_code == 400
        assert hub_of(client).sequence == 0

    def test_frame_reaches_registered_viewer(self, client):
        sink = FakeSink()
        cid = hub_of(client).register(sink)
        client.post("/frame", json={"frame": b64()})
        assert len(sink.writes) == 1
        [viewer] = client.get("/api/viewers").json()["viewers"]
        connected_at = viewer.pop("connected_at")
        assert connected_at == hub_of(client).get(cid).connected_at
        assert viewer == {
            "consumer_id": cid,
            "backpressure": False,
            "sent_frames": 1,
            "dropped_frames": 0,
            "last_seq": 1,
            "has_control": False,
        }

    def test_multipart_upload(self, client):
        part = b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + JPEG + b"\r\n"
        resp = client.post("/video/upload", content=part * 2 + b"--frame")
        assert resp.json() == {"status": "ok", "frames": "2"}
        status = client.get("/api/status").json()
        assert status["sequence"] == 2
        # El productor se desconectó al terminar el upload
        assert status["broadcasting"] is False
        assert client.get("/snapshot.jpg").status_code == 404


class TestSignaling:
    def test_broadcaster_lifecycle(self, client):
        with client.websocket_connect("/ws") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "hello"

            ws.send_json({"type": "broadcaster"})
            assert ws.receive_json() == {"type": "broadcaster-status", "active": True}

            ws.send_json({"type": "frame", "frame": b64(), "timestamp": 0})
            stats = ws.receive_json()
            assert stats["type"] == "frame-stats"
            assert stats["seq"] == 1
            assert stats["frame_size"] == len(JPEG)

            ws.send_bytes(JPEG)
            assert ws.receive_json()["seq"] == 2

            assert client.get("/api/status").json()["broadcasting"] is True
            assert client.get("/snapshot.jpg").content == JPEG

        status = client.get("/api/status").json()
        assert status["broadcasting"] is False
        assert status["sequence"] == 2
        assert client.get("/snapshot.jpg").status_code == 404

    def test_viewer_receives_own_stats(self, client):
        cid = hub_of(client).register(FakeSink())
        with client.websocket_connect("/ws") as viewer, client.websocket_connect("/ws") as producer:
            viewer.receive_json()
            producer.receive_json()

            viewer.send_json({"type": "viewer", "consumer_id": cid})
            assert viewer.receive_json() == {"type": "broadcaster-status", "active": False}

            producer.send_json({"type": "broadcaster"})
            assert viewer.receive_json()["active"] is True
            assert producer.receive_json()["active"] is True

            producer.send_json({"type": "stats", "bitrate": 1200})
            assert viewer.receive_json() == {"type": "broadcast-stats", "bitrate": 1200}

            producer.send_json({"type": "frame", "frame": b64()})
            assert viewer.receive_json()["type"] == "frame-stats"
            own = viewer.receive_json()
            assert own["type"] == "viewer-stats"
            assert own["consumer_id"] == cid
            assert own["sent_frames"] == 1
            assert own["last_seq"] == 1

            producer.close()
            assert viewer.receive_json() == {"type": "broadcaster-status", "active": False}

    def test_invalid_messages(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("no json")
            assert ws.receive_json() == {"type": "error", "message": "JSON inválido"}
            ws.send_json({"type": "nope"})
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "viewer", "consumer_id": 99})
            assert ws.receive_json() == {"type": "error", "message": "consumidor 99 no encontrado"}

    def test_empty_binary_frame_is_rejected(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_bytes(b"")
            assert ws.receive_json() == {"type": "error", "message": "frame vacío"}
            ws.send_bytes(b"\xff\xd8\xff\xd9")
            assert ws.receive_json() == {"type": "error", "message": "frame vacío"}

        assert hub_of(client).sequence == 0
        assert client.get("/snapshot.jpg").status_code == 404


class TestCbs:
    def test_device(self, client):
        assert client.get("/api/cbs/device").json() == {"success": True, "device": "LAN9668"}

    def test_config(self, client):
        assert client.get("/api/cbs/config").json() == {
            "success": True,
            "config": [{"port": 1, "tc": 3, "idleSlope": 5000}],
        }

    def test_set(self, client):
        bad = client.post("/api/cbs/set", json={"ports": [1], "tc": 3})
        assert bad.json() == {"success": False, "error": "Missing parameters"}

        resp = client.post("/api/cbs/set", json={"ports": [1, 2], "tc": 3, "idleSlope": 5000}).json()
        assert resp["success"] is True
        assert [r["port"] for r in resp["results"]] == [1, 2]

    def test_delete(self, client):
        assert client.post("/api/cbs/delete", content=b"{").json()["success"] is False
        resp = client.post("/api/cbs/delete", json={"port": 1, "tc": 7}).json()
        assert resp["success"] is False
        assert resp["cliOutput"].strip() == "not found"


def test_module_app_is_servable():
    from main import app

    assert app.state.bridge.hub.consumer_count == 0
    assert any(route.path == "/stream.mjpg" for route in app.routes)


async def test_stream_registers_viewer_when_response_starts(settings):
    bridge = create_bridge(settings)
    response = await video_stream(bridge)
    cid = int(response.headers["x-consumer-id"])
    # Sin empezar a iterar no queda nada registrado
    assert bridge.hub.consumer_count == 0

    body = response.body_iterator
    first = asyncio.ensure_future(body.__anext__())
    await asyncio.sleep(0)
    assert bridge.hub.get(cid) is not None

    bridge.hub.publish(JPEG)
    assert (await first).startswith(b"--frame\r\n")

    await body.aclose()
    assert bridge.hub.consumer_count == 0
