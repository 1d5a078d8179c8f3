from __future__ import annotations

import time
from typing import Dict

import psutil
from fastapi import APIRouter, Depends, Request

from farm_dashboard.config import Settings, get_settings
from farm_dashboard.http_utils import device_cache, farm_storage, supervisor
from farm_dashboard.services.device_cache import DeviceStateCache
from farm_dashboard.services.storage import FarmStorage
from farm_dashboard.services.supervisor import ConnectionSupervisor

router = APIRouter(prefix="/v1")


@router.get("/status")
async def status_endpoint(
    request: Request,
    settings: Settings = Depends(get_settings),
    cache: DeviceStateCache = Depends(device_cache),
    sup: ConnectionSupervisor = Depends(supervisor),
    storage: FarmStorage = Depends(farm_storage),
) -> Dict[str, object]:
    uptime = int(time.monotonic() - getattr(request.app.state, "started_at", time.monotonic()))
    memory = psutil.virtual_memory()
    pipeline = getattr(request.app.state, "pipeline", None)
    return {
        "farm_name": settings.farm_name,
        "location": settings.location,
        "service_version": settings.service_version,
        "uptime_seconds": uptime,
        "cpu_percent": psutil.cpu_percent(interval=0.0),
        "memory_percent": memory.percent,
        "ttn": sup.status(),
        "sync": storage.status(),
        "devices": len(cache),
        "mapped_devices": len(settings.sensor_mappings),
        "uplinks_accepted": pipeline.accepted if pipeline else 0,
        "uplinks_dropped": pipeline.dropped if pipeline else 0,
    }
