"""Asynchronous JSON key/value stores with per-key serialised updates."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any, Callable

from weavenotes.storage.schema import apply_runtime_pragmas, ensure_schema

LOGGER = logging.getLogger(__name__)

Updater = Callable[[Any], Any]


def exposition_key(exposition_id: str) -> str:
    return f"exposition_{exposition_id}"


def suggestions_key(exposition_id: str, weave_id: str) -> str:
    return f"suggestions_{exposition_id}_{weave_id}"


@dataclass(slots=True)
class StorageFailure(Exception):
    key: str
    reason: str

    def __str__(self) -> str:
        return f"Storage failure for {self.key!r}: {self.reason}"


class JsonStore:
    """Base store: JSON-compatible values addressed by string keys.

    Subclasses implement the blocking ``_read``/``_write``/``_delete``/``_keys``
    primitives. ``update`` applies a function to the current value while
    holding that key's lock, so concurrent read-modify-write cycles on the
    same key never lose each other's changes. Returning ``None`` from the
    function deletes the key.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, key: str, default: Any = None) -> Any:
        value = await self._call(self._read, key)
        return default if value is None else value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock_for(key):
            await self._call(self._write, key, value)

    async def delete(self, key: str) -> None:
        async with self._lock_for(key):
            await self._call(self._delete, key)

    async def update(self, key: str, fn: Updater) -> Any:
        async with self._lock_for(key):
            current = await self._call(self._read, key)
            updated = fn(current)
            if updated is None:
                await self._call(self._delete, key)
            else:
                await self._call(self._write, key, updated)
            return updated

    async def keys(self, prefix: str = "") -> list[str]:
        return await self._call(self._keys, prefix)

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        return func(*args)

    def _read(self, key: str) -> Any:
        raise NotImplementedError

    def _write(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def _keys(self, prefix: str) -> list[str]:
        raise NotImplementedError


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise StorageFailure(key=key, reason=f"value is not JSON serialisable: {exc}") from exc


def _decode(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StorageFailure(key=key, reason=f"stored value is not valid JSON: {exc}") from exc


class MemoryJsonStore(JsonStore):
    """In-process store; values are kept serialised so callers never share objects."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[str, str] = {}

    def _read(self, key: str) -> Any:
        raw = self._data.get(key)
        return None if raw is None else _decode(key, raw)

    def _write(self, key: str, value: Any) -> None:
        self._data[key] = _encode(key, value)

    def _delete(self, key: str) -> None:
        self._data.pop(key, None)

    def _keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self._data if key.startswith(prefix))


class SqliteJsonStore(JsonStore):
    """SQLite-backed store; blocking calls run in a worker thread."""

    def __init__(self, db_path: str | Path) -> None:
        super().__init__()
        self._db_path = Path(db_path)
        self._io_lock = threading.Lock()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self._db_path), check_same_thread=False)
            apply_runtime_pragmas(self._connection)
            ensure_schema(self._connection)
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(key="*", reason=f"cannot open {self._db_path}: {exc}") from exc

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        with self._io_lock:
            self._connection.close()

    def __enter__(self) -> "SqliteJsonStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._guarded, func, *args)

    def _guarded(self, func: Callable[..., Any], *args: Any) -> Any:
        key = str(args[0]) if args else "*"
        with self._io_lock:
            try:
                return func(*args)
            except sqlite3.Error as exc:
                raise StorageFailure(key=key, reason=str(exc)) from exc

    def _read(self, key: str) -> Any:
        row = self._connection.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return _decode(key, row[0])

    def _write(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO kv_store (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, payload),
            )

    def _delete(self, key: str) -> None:
        with self._connection:
            self._connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def _keys(self, prefix: str) -> list[str]:
        rows = self._connection.execute(
            "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [str(row[0]) for row in rows]
