"""Push sensor card updates to connected dashboard pages."""
from __future__ import annotations

import asyncio
import logging
from typing import Set

from fastapi import WebSocket

from farm_dashboard.models import Reading
from farm_dashboard.services.status import sensor_card

logger = logging.getLogger(__name__)


class Broadcaster:
    def __init__(self):
        self.clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self.clients.add(ws)

    async def disconnect(self, ws: WebSocket) -> None:
        async with self._lock:
            self.clients.discard(ws)

    async def broadcast_json(self, payload: dict) -> None:
        stale = []
        for ws in list(self.clients):
            try:
                await ws.send_json(payload)
            except Exception:
                stale.append(ws)
        for ws in stale:
            await self.disconnect(ws)

    def reading_changed(self, reading: Reading) -> None:
        """Cache listener: fan the evaluated card out without blocking ``put``."""

        if not self.clients:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast_json({"type": "sensor", "sensor": sensor_card(reading)}))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
