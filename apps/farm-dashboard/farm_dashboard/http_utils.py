from __future__ import annotations

from fastapi import HTTPException, Request, status

from farm_dashboard.services.assistant import FarmAssistant
from farm_dashboard.services.device_cache import DeviceStateCache
from farm_dashboard.services.documents import DocumentService
from farm_dashboard.services.storage import FarmStorage
from farm_dashboard.services.supervisor import ConnectionSupervisor


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{name} not ready")
    return value


def device_cache(request: Request) -> DeviceStateCache:
    return _state(request, "device_cache")


def supervisor(request: Request) -> ConnectionSupervisor:
    return _state(request, "supervisor")


def farm_storage(request: Request) -> FarmStorage:
    return _state(request, "storage")


def documents(request: Request) -> DocumentService:
    return _state(request, "documents")


def assistant(request: Request) -> FarmAssistant:
    return _state(request, "assistant")
