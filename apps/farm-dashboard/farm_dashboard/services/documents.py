"""Task, note and knowledge-base lists stored as whole JSON documents."""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List

from farm_dashboard.services.storage import COMPLETED_TASKS, KNOWLEDGE_BASE, NOTES, UPCOMING_TASKS, FarmStorage


def _now_ms() -> int:
    return int(time.time() * 1000)


class DocumentService:
    def __init__(self, storage: FarmStorage):
        self.storage = storage

    def items(self, key: str) -> List[Dict[str, Any]]:
        data = self.storage.load(key)
        return data if isinstance(data, list) else []

    async def add(self, key: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        items = self.items(key)
        item = {
            "id": self._next_id(items),
            **fields,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        items.insert(0, item)
        await self.storage.save(key, items)
        return item

    async def remove(self, key: str, item_id: int) -> bool:
        items = self.items(key)
        remaining = [item for item in items if item.get("id") != item_id]
        if len(remaining) == len(items):
            return False
        await self.storage.save(key, remaining)
        return True

    def upcoming_by_due_date(self) -> List[Dict[str, Any]]:
        return sorted(self.items(UPCOMING_TASKS), key=lambda task: str(task.get("dueDate") or ""))

    def stats(self) -> Dict[str, int]:
        return {
            "completed_tasks": len(self.items(COMPLETED_TASKS)),
            "upcoming_tasks": len(self.items(UPCOMING_TASKS)),
            "notes": len(self.items(NOTES)),
            "knowledge": len(self.items(KNOWLEDGE_BASE)),
        }

    @staticmethod
    def _next_id(items: List[Dict[str, Any]]) -> int:
        candidate = _now_ms()
        existing = {item.get("id") for item in items}
        while candidate in existing:
            candidate += 1
        return candidate
