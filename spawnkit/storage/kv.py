from __future__ import annotations

"""Key-value backends holding serialized agent records.

All backends share one contract: string keys, string values, and prefix
listing in lexicographic key order with an explicit cursor. ``list`` returns
at most ``limit`` keys strictly after ``cursor`` plus the cursor for the next
page, or ``None`` once the listing is exhausted.
"""

import asyncio
from dataclasses import dataclass, field
import threading
import time
from typing import Dict, List

import aiosqlite  # type: ignore
from prometheus_client import Counter, Histogram
from tinydb import Query, TinyDB

KV_OP_COUNT = Counter(
    "spawnkit_kv_operations_total",
    "Total key-value store operations",
    ["op"],
)
KV_OP_LATENCY = Histogram(
    "spawnkit_kv_operation_seconds",
    "Time spent in key-value store operations",
    ["op"],
)


@dataclass
class KeyPage:
    keys: List[str] = field(default_factory=list)
    cursor: str | None = None


def _page(sorted_keys: List[str], cursor: str | None, limit: int | None) -> KeyPage:
    if cursor is not None:
        sorted_keys = [k for k in sorted_keys if k > cursor]
    if limit is None or len(sorted_keys) <= limit:
        return KeyPage(sorted_keys, None)
    keys = sorted_keys[:limit]
    return KeyPage(keys, keys[-1])


class BaseKVStore:
    """Abstract base class for key-value backends."""

    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    async def put(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def list(self, prefix: str = "", cursor: str | None = None, limit: int | None = None) -> KeyPage:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryKVStore(BaseKVStore):
    """Dictionary backed store used for tests and defaults."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self, prefix: str = "", cursor: str | None = None, limit: int | None = None) -> KeyPage:
        keys = sorted(k for k in self._data if k.startswith(prefix))
        return _page(keys, cursor, limit)


class TinyDBKVStore(BaseKVStore):
    """TinyDB based store keeping one document per key.

    TinyDB does blocking file I/O and is not thread safe, so every call runs
    in a worker thread while holding ``_io_lock``.
    """

    def __init__(self, path: str = "spawnkit.json") -> None:
        self.db = TinyDB(path)
        self.table = self.db.table("kv")
        self._io_lock = threading.Lock()

    async def _run(self, fn, *args):
        def call():
            with self._io_lock:
                return fn(*args)

        return await asyncio.to_thread(call)

    async def get(self, key: str) -> str | None:
        row = await self._run(self.table.get, Query().key == key)
        return row["value"] if row else None

    async def put(self, key: str, value: str) -> None:
        await self._run(self.table.upsert, {"key": key, "value": value}, Query().key == key)

    async def delete(self, key: str) -> None:
        await self._run(self.table.remove, Query().key == key)

    async def list(self, prefix: str = "", cursor: str | None = None, limit: int | None = None) -> KeyPage:
        rows = await self._run(self.table.search, Query().key.test(lambda k: k.startswith(prefix)))
        return _page(sorted(r["key"] for r in rows), cursor, limit)

    async def close(self) -> None:
        await self._run(self.db.close)


class SQLiteKVStore(BaseKVStore):
    """SQLite store accessed through ``aiosqlite``."""

    def __init__(self, path: str = "spawnkit.db") -> None:
        self.path = path
        self._ready = False

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self.path)
        if not self._ready:
            await db.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            await db.commit()
            self._ready = True
        return db

    async def get(self, key: str) -> str | None:
        db = await self._connect()
        try:
            async with db.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cur:
                row = await cur.fetchone()
        finally:
            await db.close()
        return row[0] if row else None

    async def put(self, key: str, value: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            await db.commit()
        finally:
            await db.close()

    async def delete(self, key: str) -> None:
        db = await self._connect()
        try:
            await db.execute("DELETE FROM kv WHERE key = ?", (key,))
            await db.commit()
        finally:
            await db.close()

    async def list(self, prefix: str = "", cursor: str | None = None, limit: int | None = None) -> KeyPage:
        sql = "SELECT key FROM kv WHERE substr(key, 1, ?) = ? AND key > ? ORDER BY key"
        args: list = [len(prefix), prefix, cursor or ""]
        if limit is not None:
            sql += " LIMIT ?"
            args.append(limit + 1)
        db = await self._connect()
        try:
            async with db.execute(sql, args) as cur:
                keys = [row[0] for row in await cur.fetchall()]
        finally:
            await db.close()
        return _page(keys, None, limit)


class MeteredKVStore(BaseKVStore):
    """Wrap a backend and record Prometheus metrics for every operation."""

    def __init__(self, backend: BaseKVStore) -> None:
        self.backend = backend

    async def _timed(self, op: str, coro):
        start = time.perf_counter()
        try:
            return await coro
        finally:
            KV_OP_COUNT.labels(op).inc()
            KV_OP_LATENCY.labels(op).observe(time.perf_counter() - start)

    async def get(self, key: str) -> str | None:
        return await self._timed("get", self.backend.get(key))

    async def put(self, key: str, value: str) -> None:
        await self._timed("put", self.backend.put(key, value))

    async def delete(self, key: str) -> None:
        await self._timed("delete", self.backend.delete(key))

    async def list(self, prefix: str = "", cursor: str | None = None, limit: int | None = None) -> KeyPage:
        return await self._timed("list", self.backend.list(prefix, cursor, limit))

    async def close(self) -> None:
        await self.backend.close()


def make_kv_store(backend: str = "memory", path: str | None = None) -> BaseKVStore:
    """Return a metered store for the named backend."""
    if backend == "memory":
        store: BaseKVStore = InMemoryKVStore()
    elif backend == "tinydb":
        store = TinyDBKVStore(path or "spawnkit.json")
    elif backend == "sqlite":
        store = SQLiteKVStore(path or "spawnkit.db")
    else:
        raise ValueError(f"unknown store backend: {backend}")
    return MeteredKVStore(store)


__all__ = [
    "KeyPage",
    "BaseKVStore",
    "InMemoryKVStore",
    "TinyDBKVStore",
    "SQLiteKVStore",
    "MeteredKVStore",
    "make_kv_store",
]
