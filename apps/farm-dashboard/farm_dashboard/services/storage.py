"""Document persistence: local store first, remote mirror in the background."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from farm_dashboard.services.local_store import LocalStore
from farm_dashboard.services.remote_mirror import RemoteMirror

logger = logging.getLogger(__name__)

COMPLETED_TASKS = "completed-tasks"
UPCOMING_TASKS = "upcoming-tasks"
NOTES = "notes"
KNOWLEDGE_BASE = "knowledge-base"
CHAT_HISTORY = "chat-history"
DOCUMENT_KEYS = (COMPLETED_TASKS, UPCOMING_TASKS, NOTES, KNOWLEDGE_BASE, CHAT_HISTORY)

# Export file section names, keyed by store key.
EXPORT_SECTIONS = {
    COMPLETED_TASKS: "completedTasks",
    UPCOMING_TASKS: "upcomingTasks",
    NOTES: "notes",
    KNOWLEDGE_BASE: "knowledgeBase",
    CHAT_HISTORY: "chatHistory",
}


def is_newer(candidate: Any, current: Any) -> bool:
    """Longer list wins; anything that is not a pair of lists counts as newer."""

    if isinstance(candidate, list) and isinstance(current, list):
        return len(candidate) > len(current)
    return True


class FarmStorage:
    def __init__(
        self,
        local: LocalStore,
        mirror: RemoteMirror | None = None,
        *,
        farm_name: str = "My Farm",
        sync_interval_seconds: float = 300.0,
        sync_retry_interval_seconds: float = 60.0,
    ):
        self.local = local
        self.mirror = mirror if mirror is not None and mirror.available else None
        self.farm_name = farm_name
        self.sync_interval_seconds = sync_interval_seconds
        self.sync_retry_interval_seconds = sync_retry_interval_seconds
        self.sync_enabled = True
        self.pending: Set[str] = set()
        self.last_sync_at: Optional[datetime] = None
        self.sync_status = "connected" if self.mirror else "local"
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def remote_active(self) -> bool:
        return self.mirror is not None and self.sync_enabled

    async def start(self) -> None:
        if self.mirror is None:
            logger.info("Running in local-storage-only mode")
            return
        await self.load_from_remote()
        self._stop.clear()
        self._task = asyncio.create_task(self._periodic_sync(), name="farm-storage-sync")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.mirror is not None:
            await self.mirror.aclose()

    def load(self, key: str) -> Any:
        return self.local.get(key)

    async def save(self, key: str, data: Any) -> bool:
        saved = self.local.set(key, data)
        if self.remote_active:
            await self._push(key, data)
        return saved

    async def delete(self, key: str) -> None:
        self.local.delete(key)
        if self.remote_active:
            await self.mirror.delete(key)

    async def load_from_remote(self) -> None:
        if self.mirror is None:
            return
        for key in DOCUMENT_KEYS:
            remote = await self.mirror.load(key)
            if not remote:
                continue
            local = self.local.get(key)
            if local is None or is_newer(remote, local):
                self.local.set(key, remote)
                logger.info("Loaded %s from remote mirror", key)

    async def sync_all(self) -> bool:
        if not self.remote_active:
            logger.info("Sync disabled or remote mirror not available")
            return False
        self.sync_status = "syncing"
        ok = True
        for key in DOCUMENT_KEYS:
            data = self.local.get(key)
            if data:
                ok = await self._push(key, data) and ok
        self.sync_status = "connected" if ok else "error"
        logger.info("Full sync completed" if ok else "Full sync finished with errors")
        return ok

    def set_sync_enabled(self, enabled: bool) -> str:
        self.sync_enabled = enabled
        if self.mirror is None:
            self.sync_status = "local"
        else:
            self.sync_status = "connected" if enabled else "disabled"
        return self.sync_status

    def status(self) -> Dict[str, Any]:
        return {
            "status": self.sync_status,
            "remote": self.mirror is not None,
            "sync_enabled": self.sync_enabled,
            "pending": sorted(self.pending),
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
        }

    def export_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "farmName": self.farm_name,
        }
        for key, section in EXPORT_SECTIONS.items():
            data[section] = self.local.get(key) or []
        return data

    async def import_data(self, payload: Dict[str, Any]) -> list[str]:
        imported = []
        for key, section in EXPORT_SECTIONS.items():
            value = payload.get(section)
            if value:
                await self.save(key, value)
                imported.append(key)
        logger.info("Imported %d document sets", len(imported))
        return imported

    async def _push(self, key: str, data: Any) -> bool:
        if await self.mirror.save(key, data):
            self.pending.discard(key)
            self.last_sync_at = datetime.now(timezone.utc)
            return True
        self.pending.add(key)
        return False

    async def _periodic_sync(self) -> None:
        delay = self.sync_interval_seconds
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass
            delay = self.sync_interval_seconds
            if not (self.sync_enabled and self.pending):
                continue
            try:
                if not await self.sync_all():
                    delay = self.sync_retry_interval_seconds
            except Exception:
                logger.exception("Periodic sync failed")
                delay = self.sync_retry_interval_seconds
