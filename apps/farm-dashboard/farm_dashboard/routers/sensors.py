from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.responses import PlainTextResponse

from farm_dashboard.http_utils import device_cache, supervisor
from farm_dashboard.services.device_cache import DeviceStateCache
from farm_dashboard.services.status import sensor_card
from farm_dashboard.services.supervisor import ConnectionSupervisor

router = APIRouter(prefix="/v1")


@router.get("/sensors")
async def list_sensors(cache: DeviceStateCache = Depends(device_cache)) -> Dict[str, object]:
    now = datetime.now(timezone.utc)
    cards: List[dict] = [sensor_card(reading, now) for reading in cache.all()]
    cards.sort(key=lambda card: (str(card["name"]).lower(), card["device_id"]))
    return {"sensors": cards, "count": len(cards), "generated_at": now.isoformat()}


@router.get("/sensors/context", response_class=PlainTextResponse)
async def sensor_context(cache: DeviceStateCache = Depends(device_cache)) -> str:
    return cache.sensor_context()


@router.get("/sensors/{device_id}")
async def get_sensor(device_id: str, cache: DeviceStateCache = Depends(device_cache)) -> Dict[str, object]:
    reading = cache.get(device_id)
    if reading is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sensor not found")
    card = sensor_card(reading)
    card["payload"] = reading.payload
    return card


@router.websocket("/sensors/stream")
async def sensor_stream(websocket: WebSocket) -> None:
    hub = websocket.app.state.broadcaster
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(websocket)


@router.get("/ttn")
async def ttn_status(sup: ConnectionSupervisor = Depends(supervisor)) -> Dict[str, object]:
    return sup.status()


@router.post("/ttn/connect")
async def ttn_connect(sup: ConnectionSupervisor = Depends(supervisor)) -> Dict[str, object]:
    if not await sup.connect():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot connect while {sup.state.value}",
        )
    return sup.status()


@router.post("/ttn/disconnect")
async def ttn_disconnect(sup: ConnectionSupervisor = Depends(supervisor)) -> Dict[str, object]:
    if sup.state.value == "disabled":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="TTN integration is disabled")
    await sup.disconnect()
    return sup.status()
