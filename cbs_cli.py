#!/usr/bin/env python3
"""
Wrapper de línea de comandos para la fachada CBS: usa la misma cola y resolución de dispositivo
que el servidor y muestra el resultado en JSON.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from cbs import CbsClient
from command_queue import CommandQueue
from config import get_settings
from device import DeviceResolver
from protocol import validate_cbs_delete, validate_cbs_set


def build_client(cli_path: str | None = None, devices: list[str] | None = None) -> CbsClient:
    settings = get_settings()
    resolver = DeviceResolver(devices or settings.cbs_devices)
    queue = CommandQueue(resolver, timeout_s=settings.cbs_timeout_s)
    return CbsClient(cli_path or settings.cbs_cli_path, queue, ports=settings.cbs_ports)


async def run_command(client: CbsClient, args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "device":
        return await client.device_type()
    if args.command == "config":
        return await client.get_config(args.ports or None)
    if args.command == "set":
        data = {"ports": args.ports, "tc": args.tc, "idleSlope": args.idle_slope}
        ok, err = validate_cbs_set(data)
        if not ok:
            return {"success": False, "error": err}
        return await client.set_idle_slope(args.ports, args.tc, args.idle_slope)
    data = {"port": args.port, "tc": args.tc}
    ok, err = validate_cbs_delete(data)
    if not ok:
        return {"success": False, "error": err}
    return await client.delete_shaper(args.port, args.tc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Control CBS (Credit Based Shaper) por la CLI del switch.")
    parser.add_argument("--cli", help="Ruta a la CLI (default: CBS_CLI_PATH)")
    parser.add_argument("--device", action="append", help="Dispositivo candidato (repetible, default: CBS_DEVICES)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log en nivel DEBUG")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("device", help="Tipo de dispositivo")

    p_config = sub.add_parser("config", help="Config CBS por puerto")
    p_config.add_argument("ports", nargs="*", type=int, help="Puertos (default: todos)")

    p_set = sub.add_parser("set", help="Configura idle slope")
    p_set.add_argument("--tc", type=int, required=True)
    p_set.add_argument("--idle-slope", type=int, required=True)
    p_set.add_argument("ports", nargs="+", type=int)

    p_delete = sub.add_parser("delete", help="Borra el shaper de una traffic class")
    p_delete.add_argument("--tc", type=int, required=True)
    p_delete.add_argument("port", type=int)
    return parser


def main() -> int:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    client = build_client(args.cli, args.device)
    result = asyncio.run(run_command(client, args))
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
