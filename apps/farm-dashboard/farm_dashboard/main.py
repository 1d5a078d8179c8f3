"""FastAPI application serving the farm dashboard, its documents and the TTN uplink feed."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI

from farm_dashboard.config import get_settings
from farm_dashboard.observability import configure_observability
from farm_dashboard.routers import chat as chat_router
from farm_dashboard.routers import documents as documents_router
from farm_dashboard.routers import root as root_router
from farm_dashboard.routers import sensors as sensors_router
from farm_dashboard.routers import status as status_router
from farm_dashboard.routers import sync as sync_router
from farm_dashboard.services.assistant import FarmAssistant
from farm_dashboard.services.broadcaster import Broadcaster
from farm_dashboard.services.device_cache import DeviceStateCache
from farm_dashboard.services.documents import DocumentService
from farm_dashboard.services.local_store import LocalStore
from farm_dashboard.services.normalizer import IngestPipeline
from farm_dashboard.services.remote_mirror import RemoteMirror
from farm_dashboard.services.storage import FarmStorage
from farm_dashboard.services.supervisor import ConnectionState, ConnectionSupervisor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    local = LocalStore(settings.data_path / "local")
    mirror = RemoteMirror(settings.firebase) if settings.firebase.configured else None
    storage = FarmStorage(
        local,
        mirror,
        farm_name=settings.farm_name,
        sync_interval_seconds=settings.sync_interval_seconds,
        sync_retry_interval_seconds=settings.sync_retry_interval_seconds,
    )
    await storage.start()

    cache = DeviceStateCache(local)
    restored = cache.load_snapshot()
    broadcaster = Broadcaster()
    cache.add_listener(broadcaster.reading_changed)
    pipeline = IngestPipeline(settings.sensor_mappings, cache)

    supervisor = ConnectionSupervisor(settings.ttn, pipeline.handle_message)
    if supervisor.state is ConnectionState.DISABLED:
        logger.warning("TTN integration disabled or credentials missing; showing cached readings only")
    elif settings.ttn.auto_connect:
        await supervisor.connect()

    documents = DocumentService(storage)
    assistant = FarmAssistant(
        documents,
        cache,
        max_history=settings.max_chat_history,
        reply_delay_seconds=settings.chat_reply_delay_seconds,
    )

    app.state.storage = storage
    app.state.device_cache = cache
    app.state.broadcaster = broadcaster
    app.state.pipeline = pipeline
    app.state.supervisor = supervisor
    app.state.documents = documents
    app.state.assistant = assistant
    app.state.started_at = time.monotonic()
    logger.info("Farm dashboard started for %s (%d cached devices)", settings.farm_name, restored)

    try:
        yield
    finally:
        supervisor: ConnectionSupervisor | None = getattr(app.state, "supervisor", None)
        if supervisor is not None:
            await supervisor.disconnect()
        cache: DeviceStateCache | None = getattr(app.state, "device_cache", None)
        if cache is not None:
            await cache.flush()
        storage: FarmStorage | None = getattr(app.state, "storage", None)
        if storage is not None:
            await storage.stop()
        logger.info("Farm dashboard stopped")


settings = get_settings()
app = FastAPI(title="Farm Dashboard", lifespan=lifespan)
configure_observability(
    app,
    service_name=settings.service_name,
    service_version=settings.service_version,
    log_level=settings.log_level,
    otel_enabled=settings.otel_enabled,
    otlp_endpoint=settings.otel_exporter_otlp_endpoint,
    otlp_headers=settings.otel_exporter_otlp_headers,
    otel_sample_ratio=settings.otel_sample_ratio,
)

app.include_router(root_router.router)
app.include_router(status_router.router)
app.include_router(sensors_router.router)
app.include_router(documents_router.router)
app.include_router(chat_router.router)
app.include_router(sync_router.router)


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("farm_dashboard.main:app", host="0.0.0.0", port=8000, reload=True)
