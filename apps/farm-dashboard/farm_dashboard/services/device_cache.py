"""Latest Reading per device, persisted as a single local snapshot."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from farm_dashboard.models import Reading
from farm_dashboard.services.local_store import LocalStore
from farm_dashboard.services.status import minutes_since

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "sensor-cache"
NO_SENSOR_DATA = "No sensor data available."

CacheListener = Callable[[Reading], None]


def _format_scalar(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class DeviceStateCache:
    """Authoritative device state for rendering and chat context.

    ``put`` replaces the device's entry (last write wins, regardless of the
    frame's receipt time) and schedules a snapshot write without waiting for
    it. Snapshot writes go through a single writer task that always writes the
    most recent pending snapshot, so writes never overlap and the last
    submitted snapshot is the one left on disk. Callers must not assume the
    snapshot is durable when ``put`` returns; ``flush`` waits for the writer.
    """

    def __init__(self, store: LocalStore, *, snapshot_key: str = SNAPSHOT_KEY):
        self.store = store
        self.snapshot_key = snapshot_key
        self._readings: Dict[str, Reading] = {}
        self._listeners: List[CacheListener] = []
        self._latest: Optional[Dict[str, Any]] = None
        self._writer: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._readings)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._readings

    def get(self, device_id: str) -> Optional[Reading]:
        return self._readings.get(device_id)

    def all(self) -> List[Reading]:
        return list(self._readings.values())

    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def put(self, reading: Reading) -> None:
        self._readings[reading.device_id] = reading
        self._schedule_persist()
        for listener in list(self._listeners):
            try:
                listener(reading)
            except Exception:
                logger.exception("Cache listener failed for %s", reading.device_id)

    def snapshot(self) -> Dict[str, Any]:
        return {device_id: reading.to_snapshot() for device_id, reading in self._readings.items()}

    def save_snapshot(self) -> bool:
        return self._write(self.snapshot())

    def load_snapshot(self) -> int:
        """Replace the cache with the persisted snapshot; never raises."""

        self._readings = {}
        try:
            data = self.store.get(self.snapshot_key)
        except Exception:
            logger.exception("Failed to read cached sensor data")
            return 0
        if data is None:
            logger.info("No cached sensor data found")
            return 0
        if not isinstance(data, dict):
            logger.error("Cached sensor data is not an object; starting empty")
            return 0
        for device_id, entry in data.items():
            try:
                reading = Reading.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping corrupt cached reading for %s: %s", device_id, exc)
                continue
            self._readings[reading.device_id] = reading
        logger.info("Loaded cached sensor data for %d devices", len(self._readings))
        return len(self._readings)

    async def flush(self) -> None:
        while self._writer is not None and not self._writer.done():
            await asyncio.wait({self._writer})

    def sensor_context(self, now: datetime | None = None) -> str:
        """Plain-text summary of every device for the chat assistant."""

        readings = self.all()
        if not readings:
            return NO_SENSOR_DATA
        now = now or datetime.now(timezone.utc)
        lines = []
        for reading in readings:
            payload_text = ", ".join(f"{key}: {_format_scalar(value)}" for key, value in reading.payload.items())
            minutes = minutes_since(reading.last_update, now)
            lines.append(f"- {reading.mapping.name}: {payload_text} ({minutes} minutes ago)")
        return "SENSOR READINGS:\n" + "\n".join(lines)

    def _schedule_persist(self) -> None:
        snapshot = self.snapshot()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(snapshot)
            return
        self._latest = snapshot
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._drain(), name="sensor-cache-persist")

    async def _drain(self) -> None:
        while self._latest is not None:
            snapshot, self._latest = self._latest, None
            try:
                await asyncio.to_thread(self._write, snapshot)
            except Exception:
                logger.exception("Failed to persist sensor cache snapshot")

    def _write(self, snapshot: Dict[str, Any]) -> bool:
        ok = self.store.set(self.snapshot_key, snapshot)
        if not ok:
            logger.error("Failed to persist sensor cache snapshot")
        return ok
