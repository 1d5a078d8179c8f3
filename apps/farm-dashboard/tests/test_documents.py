from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from farm_dashboard.config import DeviceMapping
from farm_dashboard.models import Reading
from farm_dashboard.services.assistant import FarmAssistant, build_farm_context
from farm_dashboard.services.device_cache import NO_SENSOR_DATA, DeviceStateCache
from farm_dashboard.services.documents import DocumentService
from farm_dashboard.services.local_store import LocalStore
from farm_dashboard.services.storage import CHAT_HISTORY, COMPLETED_TASKS, NOTES, UPCOMING_TASKS, FarmStorage


@pytest.fixture
def docs(tmp_path) -> DocumentService:
    return DocumentService(FarmStorage(LocalStore(tmp_path)))


def test_add_prepends_with_unique_ids(docs):
    async def runner():
        first = await docs.add(NOTES, {"content": "first"})
        second = await docs.add(NOTES, {"content": "second"})
        return first, second

    first, second = asyncio.run(runner())
    assert first["id"] != second["id"]
    assert [note["content"] for note in docs.items(NOTES)] == ["second", "first"]
    assert "timestamp" in first


def test_remove_reports_missing_items(docs):
    async def runner():
        item = await docs.add(COMPLETED_TASKS, {"description": "Fed chickens", "date": "2026-05-01"})
        return await docs.remove(COMPLETED_TASKS, item["id"]), await docs.remove(COMPLETED_TASKS, 123)

    removed, missing = asyncio.run(runner())
    assert removed is True
    assert missing is False
    assert docs.items(COMPLETED_TASKS) == []


def test_upcoming_sorted_by_due_date(docs):
    async def runner():
        await docs.add(UPCOMING_TASKS, {"description": "Shear sheep", "dueDate": "2026-06-10"})
        await docs.add(UPCOMING_TASKS, {"description": "Order hay", "dueDate": "2026-05-03"})
        await docs.add(UPCOMING_TASKS, {"description": "Vet visit", "dueDate": "2026-05-20"})

    asyncio.run(runner())
    assert [task["description"] for task in docs.upcoming_by_due_date()] == ["Order hay", "Vet visit", "Shear sheep"]
    assert docs.stats() == {"completed_tasks": 0, "upcoming_tasks": 3, "notes": 0, "knowledge": 0}


def test_farm_context_sections():
    context = build_farm_context(
        "How wet is the north field?",
        sensor_context=NO_SENSOR_DATA,
        completed=[{"date": "2026-05-01", "description": "Fixed gate"}],
        upcoming=[],
        notes=[],
        knowledge=[],
    )
    assert "How wet is the north field?" in context
    assert NO_SENSOR_DATA in context
    assert "Fixed gate" in context


def test_assistant_reply_records_history(tmp_path):
    store = LocalStore(tmp_path)
    docs = DocumentService(FarmStorage(store))
    cache = DeviceStateCache(store)
    cache.put(
        Reading(
            device_id="soil-01",
            mapping=DeviceMapping(name="North Field Soil", type="soil_moisture"),
            payload={"moisture": 31},
            last_update=datetime.now(timezone.utc),
        )
    )
    bot = FarmAssistant(docs, cache, max_history=4, reply_delay_seconds=0)

    async def runner():
        replies = []
        for text in ("one", "two", "three"):
            replies.append(await bot.reply(text))
        return replies

    replies = asyncio.run(runner())
    assert replies[-1]["role"] == "assistant"
    assert "North Field Soil: moisture: 31" in replies[-1]["context"]
    history = docs.items(CHAT_HISTORY)
    assert len(history) == 4
    assert [entry["content"] for entry in history if entry["role"] == "user"] == ["two", "three"]


def test_assistant_rejects_blank_message(docs, tmp_path):
    bot = FarmAssistant(docs, DeviceStateCache(LocalStore(tmp_path / "cache")), reply_delay_seconds=0)
    with pytest.raises(ValueError):
        asyncio.run(bot.reply("   "))
