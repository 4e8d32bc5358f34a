"""
Configuración: variables de entorno (.env.local) para el relay MJPEG y la CLI CBS.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(".env.local")

DEFAULT_CBS_DEVICES = "/dev/ttyACM0,/dev/ttyACM1,/dev/ttyUSB0"


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    cbs_cli_path: str = "mvdct.cli"
    cbs_devices: tuple[str, ...] = _split_list(DEFAULT_CBS_DEVICES)
    cbs_timeout_s: float = 15.0
    cbs_ports: int = 12
    sink_high_water: int = 3
    signal_outbox: int = 32

    @classmethod
    def from_env(cls) -> "Settings":
        """Lee la configuración desde el entorno (ya cargado con .env.local)."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cbs_cli_path=os.getenv("CBS_CLI_PATH", "mvdct.cli"),
            cbs_devices=_split_list(os.getenv("CBS_DEVICES", DEFAULT_CBS_DEVICES)),
            cbs_timeout_s=float(os.getenv("CBS_TIMEOUT_S", "15")),
            cbs_ports=int(os.getenv("CBS_PORTS", "12")),
            sink_high_water=int(os.getenv("SINK_HIGH_WATER", "3")),
            signal_outbox=int(os.getenv("SIGNAL_OUTBOX", "32")),
        )


def get_settings() -> Settings:
    """Configuración del proceso."""
    return Settings.from_env()
