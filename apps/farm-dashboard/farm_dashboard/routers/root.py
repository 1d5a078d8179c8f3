from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from farm_dashboard.config import Settings, get_settings
from farm_dashboard.ui import render_dashboard_page

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def dashboard(settings: Settings = Depends(get_settings)):
    return HTMLResponse(render_dashboard_page(settings))


@router.get("/healthz")
async def healthz():
    return {"status": "ok"}
