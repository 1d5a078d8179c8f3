from __future__ import annotations

import asyncio
import json

import httpx

from farm_dashboard.config import FirebaseSettings
from farm_dashboard.services.local_store import LocalStore
from farm_dashboard.services.remote_mirror import RemoteMirror
from farm_dashboard.services.storage import NOTES, UPCOMING_TASKS, FarmStorage, is_newer

DB_URL = "https://farm-test-default-rtdb.firebaseio.com"


class FakeDatabase:
    """In-memory stand-in for the Realtime Database REST surface."""

    def __init__(self, *, fail_writes=False):
        self.docs = {}
        self.fail_writes = fail_writes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = request.url.path.strip("/").removesuffix(".json")
        if request.method == "GET":
            return httpx.Response(200, json=self.docs.get(key))
        if self.fail_writes:
            return httpx.Response(503, json={"error": "unavailable"})
        if request.method == "PUT":
            self.docs[key] = json.loads(request.content)
            return httpx.Response(200, json=self.docs[key])
        if request.method == "DELETE":
            self.docs.pop(key, None)
            return httpx.Response(200, json=None)
        return httpx.Response(405)


def _mirror(db: FakeDatabase, **overrides) -> RemoteMirror:
    settings = FirebaseSettings(enabled=True, database_url=DB_URL, **overrides)
    return RemoteMirror(settings, transport=httpx.MockTransport(db))


def test_is_newer_prefers_longer_lists():
    assert is_newer([1, 2], [1])
    assert not is_newer([1], [1, 2])
    assert not is_newer([1], [2])
    assert is_newer({"a": 1}, [1, 2, 3])


def test_local_only_mode(tmp_path):
    async def runner():
        storage = FarmStorage(LocalStore(tmp_path))
        await storage.start()
        assert await storage.save(NOTES, [{"id": 1}])
        assert storage.load(NOTES) == [{"id": 1}]
        assert await storage.sync_all() is False
        assert storage.set_sync_enabled(True) == "local"
        await storage.stop()
        return storage.status()

    status = asyncio.run(runner())
    assert status["status"] == "local"
    assert status["remote"] is False


def test_mirror_without_url_is_ignored(tmp_path):
    mirror = RemoteMirror(FirebaseSettings(enabled=True))
    storage = FarmStorage(LocalStore(tmp_path), mirror)
    assert storage.mirror is None
    assert storage.sync_status == "local"


def test_save_pushes_to_mirror_with_auth(tmp_path):
    db = FakeDatabase()

    async def runner():
        storage = FarmStorage(LocalStore(tmp_path), _mirror(db, auth_token="db-secret"))
        await storage.save(NOTES, [{"id": 1, "content": "Ewes due next week"}])
        await storage.stop()
        return storage

    storage = asyncio.run(runner())
    assert db.docs["notes"] == [{"id": 1, "content": "Ewes due next week"}]
    assert db.requests[-1].url.params["auth"] == "db-secret"
    assert storage.status()["last_sync_at"] is not None


def test_failed_push_marks_key_pending_and_sets_error(tmp_path):
    db = FakeDatabase(fail_writes=True)

    async def runner():
        storage = FarmStorage(LocalStore(tmp_path), _mirror(db))
        saved = await storage.save(NOTES, [{"id": 1}])
        synced = await storage.sync_all()
        await storage.stop()
        return storage, saved, synced

    storage, saved, synced = asyncio.run(runner())
    assert saved is True
    assert synced is False
    assert storage.local.get(NOTES) == [{"id": 1}]
    assert storage.status()["pending"] == ["notes"]
    assert storage.sync_status == "error"


def test_disabled_sync_keeps_writes_local(tmp_path):
    db = FakeDatabase()

    async def runner():
        storage = FarmStorage(LocalStore(tmp_path), _mirror(db))
        assert storage.set_sync_enabled(False) == "disabled"
        await storage.save(NOTES, [{"id": 1}])
        await storage.stop()

    asyncio.run(runner())
    assert db.docs == {}


def test_start_pulls_longer_remote_lists(tmp_path):
    db = FakeDatabase()
    db.docs["notes"] = [{"id": 2}, {"id": 1}]
    db.docs["upcoming-tasks"] = [{"id": 5}]
    local = LocalStore(tmp_path)
    local.set(UPCOMING_TASKS, [{"id": 7}, {"id": 6}])

    async def runner():
        storage = FarmStorage(local, _mirror(db), sync_interval_seconds=3600)
        await storage.start()
        await storage.stop()

    asyncio.run(runner())
    assert local.get(NOTES) == [{"id": 2}, {"id": 1}]
    assert local.get(UPCOMING_TASKS) == [{"id": 7}, {"id": 6}]


def test_export_and_import_round_trip(tmp_path):
    async def runner():
        source = FarmStorage(LocalStore(tmp_path / "a"), farm_name="Pasco Ranch")
        await source.save(NOTES, [{"id": 1, "content": "Fence down by creek"}])
        exported = source.export_data()

        target = FarmStorage(LocalStore(tmp_path / "b"))
        imported = await target.import_data(exported)
        return exported, imported, target

    exported, imported, target = asyncio.run(runner())
    assert exported["farmName"] == "Pasco Ranch"
    assert exported["completedTasks"] == []
    assert imported == ["notes"]
    assert target.load(NOTES) == [{"id": 1, "content": "Fence down by creek"}]
