"""
Estado compartido de la aplicación: hub de video, señalización y cola CBS.
Se crea una vez por app y se guarda en app.state.bridge.
"""

from dataclasses import dataclass

from fastapi.requests import HTTPConnection

from cbs import CbsClient
from command_queue import CommandQueue
from config import Settings
from device import DeviceResolver
from hub import FrameHub
from signaling import Signaling


@dataclass
class Bridge:
    settings: Settings
    hub: FrameHub
    signaling: Signaling
    resolver: DeviceResolver
    queue: CommandQueue
    cbs: CbsClient


def create_bridge(settings: Settings) -> Bridge:
    signaling = Signaling(outbox_size=settings.signal_outbox)
    hub = FrameHub(on_stats=signaling.broadcast)
    resolver = DeviceResolver(settings.cbs_devices)
    queue = CommandQueue(resolver, timeout_s=settings.cbs_timeout_s)
    cbs = CbsClient(settings.cbs_cli_path, queue, ports=settings.cbs_ports)
    return Bridge(settings=settings, hub=hub, signaling=signaling, resolver=resolver, queue=queue, cbs=cbs)


def get_bridge(conn: HTTPConnection) -> Bridge:
    """Dependencia FastAPI (HTTP y WebSocket)."""
    return conn.app.state.bridge
