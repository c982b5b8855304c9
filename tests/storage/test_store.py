from __future__ import annotations

import asyncio
from pathlib import Path
import sqlite3

import pytest

from weavenotes.storage.store import (
    MemoryJsonStore,
    SqliteJsonStore,
    StorageFailure,
    exposition_key,
    suggestions_key,
)


def test_key_helpers_use_exposition_and_weave_scope() -> None:
    assert exposition_key("111") == "exposition_111"
    assert suggestions_key("111", "222") == "suggestions_111_222"


def test_memory_store_get_set_delete_and_keys() -> None:
    async def _scenario() -> None:
        store = MemoryJsonStore()
        await store.set("exposition_1", {"weaves": {}})
        await store.set("suggestions_1_2", {"t1": []})

        assert await store.get("exposition_1") == {"weaves": {}}
        assert await store.get("missing", {"fallback": True}) == {"fallback": True}
        assert await store.keys("suggestions_") == ["suggestions_1_2"]

        await store.delete("exposition_1")
        assert await store.get("exposition_1") is None

    asyncio.run(_scenario())


def test_memory_store_hands_out_copies() -> None:
    async def _scenario() -> None:
        store = MemoryJsonStore()
        value = {"items": [1]}
        await store.set("k", value)
        value["items"].append(2)

        loaded = await store.get("k")
        loaded["items"].append(3)

        assert await store.get("k") == {"items": [1]}

    asyncio.run(_scenario())


def test_update_applies_function_and_none_deletes() -> None:
    async def _scenario() -> None:
        store = MemoryJsonStore()

        created = await store.update("counter", lambda current: {"n": (current or {"n": 0})["n"] + 1})
        assert created == {"n": 1}

        assert await store.update("counter", lambda current: None) is None
        assert await store.get("counter") is None

    asyncio.run(_scenario())


def test_memory_store_rejects_values_that_are_not_json() -> None:
    async def _scenario() -> None:
        store = MemoryJsonStore()
        with pytest.raises(StorageFailure, match="not JSON serialisable"):
            await store.set("bad", {"value": object()})

    asyncio.run(_scenario())


def test_sqlite_store_persists_between_connections(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "store.db"

    async def _write() -> None:
        with SqliteJsonStore(db_path) as store:
            await store.set("exposition_9", {"expositionId": "9", "weaves": {}})

    async def _read() -> dict:
        with SqliteJsonStore(db_path) as store:
            assert await store.keys("exposition_") == ["exposition_9"]
            return await store.get("exposition_9")

    asyncio.run(_write())

    assert asyncio.run(_read()) == {"expositionId": "9", "weaves": {}}


def test_sqlite_store_serialises_concurrent_updates_per_key(tmp_path: Path) -> None:
    async def _scenario() -> None:
        with SqliteJsonStore(tmp_path / "store.db") as store:

            def _increment(current: dict | None) -> dict:
                count = 0 if current is None else current["count"]
                return {"count": count + 1}

            await asyncio.gather(*(store.update("counter", _increment) for _ in range(25)))

            assert await store.get("counter") == {"count": 25}

    asyncio.run(_scenario())


def test_sqlite_store_reports_corrupt_values(tmp_path: Path) -> None:
    db_path = tmp_path / "store.db"
    with SqliteJsonStore(db_path):
        pass

    connection = sqlite3.connect(str(db_path))
    connection.execute("INSERT INTO kv_store (key, value) VALUES (?, ?)", ("broken", "{not json"))
    connection.commit()
    connection.close()

    async def _scenario() -> None:
        with SqliteJsonStore(db_path) as store:
            with pytest.raises(StorageFailure, match="broken"):
                await store.get("broken")

    asyncio.run(_scenario())


def test_sqlite_store_open_failure_is_storage_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file", encoding="utf-8")

    with pytest.raises(StorageFailure):
        SqliteJsonStore(blocker / "store.db")
