from __future__ import annotations

from datetime import date
from typing import Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from farm_dashboard.http_utils import farm_storage
from farm_dashboard.schemas import ImportEnvelope, SyncToggle
from farm_dashboard.services.storage import FarmStorage

router = APIRouter(prefix="/v1")


@router.get("/sync")
async def sync_status(storage: FarmStorage = Depends(farm_storage)) -> Dict[str, object]:
    return storage.status()


@router.post("/sync")
async def manual_sync(storage: FarmStorage = Depends(farm_storage)) -> Dict[str, object]:
    ok = await storage.sync_all()
    return {"synced": ok, **storage.status()}


@router.put("/sync/enabled")
async def toggle_sync(payload: SyncToggle, storage: FarmStorage = Depends(farm_storage)) -> Dict[str, object]:
    storage.set_sync_enabled(payload.enabled)
    return storage.status()


@router.get("/export")
async def export_data(storage: FarmStorage = Depends(farm_storage)) -> JSONResponse:
    filename = f"farm-data-{date.today().isoformat()}.json"
    return JSONResponse(
        storage.export_data(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
async def import_data(payload: ImportEnvelope, storage: FarmStorage = Depends(farm_storage)) -> Dict[str, object]:
    imported = await storage.import_data(payload.model_dump(exclude_none=True))
    return {"status": "imported", "keys": imported}
