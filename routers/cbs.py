"""
Endpoints CBS (Credit Based Shaper): device, config, set y delete sobre la CLI del switch.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from protocol import validate_cbs_delete, validate_cbs_set
from state import Bridge, get_bridge

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cbs", tags=["cbs"])


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@router.get("/device")
async def cbs_device(bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Tipo de dispositivo reportado por la CLI."""
    return await bridge.cbs.device_type()


@router.get("/config")
async def cbs_config(bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Config CBS (traffic class + idle slope) de todos los puertos."""
    return await bridge.cbs.get_config()


@router.post("/set")
async def cbs_set(request: Request, bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Configura el idle slope de una traffic class en varios puertos."""
    data = await _read_json(request)
    ok, err = validate_cbs_set(data)
    if not ok:
        logger.warning("CBS set inválido: %s | data=%s", err, data)
        return {"success": False, "error": err}
    return await bridge.cbs.set_idle_slope(data["ports"], data["tc"], data["idleSlope"])


@router.post("/delete")
async def cbs_delete(request: Request, bridge: Bridge = Depends(get_bridge)) -> dict[str, Any]:
    """Borra el shaper de una traffic class en un puerto."""
    data = await _read_json(request)
    ok, err = validate_cbs_delete(data)
    if not ok:
        logger.warning("CBS delete inválido: %s | data=%s", err, data)
        return {"success": False, "error": err}
    return await bridge.cbs.delete_shaper(data["port"], data["tc"])
