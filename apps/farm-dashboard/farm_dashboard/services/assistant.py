"""Placeholder farm assistant.

There is no model behind this: it assembles the farm context a real backend
would receive and answers with a fixed explanation.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from farm_dashboard.services.device_cache import DeviceStateCache
from farm_dashboard.services.documents import DocumentService
from farm_dashboard.services.storage import CHAT_HISTORY, COMPLETED_TASKS, KNOWLEDGE_BASE, NOTES, UPCOMING_TASKS

logger = logging.getLogger(__name__)


def _bullets(lines: List[str]) -> str:
    return "\n".join(lines)


def build_farm_context(
    message: str,
    *,
    sensor_context: str,
    completed: List[Dict[str, Any]],
    upcoming: List[Dict[str, Any]],
    notes: List[Dict[str, Any]],
    knowledge: List[Dict[str, Any]],
) -> str:
    return f"""
FARM DATA CONTEXT:

{sensor_context}

KNOWLEDGE BASE ({len(knowledge)} entries):
{_bullets([f"- {k.get('topic')}: {k.get('content')}" for k in knowledge])}

COMPLETED TASKS ({len(completed)} total, showing recent):
{_bullets([f"- {t.get('description')} ({t.get('date')})" for t in completed[:20]])}

UPCOMING TASKS ({len(upcoming)} total):
{_bullets([f"- {t.get('description')} (Due: {t.get('dueDate')})" for t in upcoming])}

NOTES ({len(notes)} total, showing recent):
{_bullets([f"- {n.get('content')} ({n.get('timestamp')})" for n in notes[:10]])}

Based on the above farm data, please answer the following question or provide relevant insights:
{message}
"""


def placeholder_reply(message: str, counts: Dict[str, int], sensor_count: int) -> str:
    sensors_line = f"\n- {sensor_count} active sensors" if sensor_count else ""
    return f"""I'm a placeholder response. To enable AI functionality, you'll need to:

1. Set up a backend API endpoint for your assistant
2. Keep the model API key on that backend
3. Point the dashboard chat at your backend

Your question was: "{message}"

I can see you have:
- {counts['completed_tasks']} completed tasks
- {counts['upcoming_tasks']} upcoming tasks
- {counts['notes']} notes
- {counts['knowledge']} knowledge base entries{sensors_line}"""


class FarmAssistant:
    def __init__(
        self,
        documents: DocumentService,
        cache: DeviceStateCache,
        *,
        max_history: int = 50,
        reply_delay_seconds: float = 1.0,
    ):
        self.documents = documents
        self.cache = cache
        self.max_history = max_history
        self.reply_delay_seconds = reply_delay_seconds

    def history(self) -> List[Dict[str, Any]]:
        return self.documents.items(CHAT_HISTORY)

    def context_for(self, message: str) -> str:
        return build_farm_context(
            message,
            sensor_context=self.cache.sensor_context(),
            completed=self.documents.items(COMPLETED_TASKS),
            upcoming=self.documents.items(UPCOMING_TASKS),
            notes=self.documents.items(NOTES),
            knowledge=self.documents.items(KNOWLEDGE_BASE),
        )

    async def reply(self, message: str) -> Dict[str, Any]:
        message = message.strip()
        if not message:
            raise ValueError("message must not be empty")
        context = self.context_for(message)
        logger.debug("Assembled farm context (%d chars)", len(context))
        if self.reply_delay_seconds:
            await asyncio.sleep(self.reply_delay_seconds)
        response = placeholder_reply(message, self.documents.stats(), len(self.cache))

        now = datetime.now(timezone.utc).isoformat()
        history = self.history()
        history.extend(
            [
                {"role": "user", "content": message, "timestamp": now},
                {"role": "assistant", "content": response, "timestamp": now},
            ]
        )
        await self.documents.storage.save(CHAT_HISTORY, history[-self.max_history :])
        return {"role": "assistant", "content": response, "timestamp": now, "context": context}
