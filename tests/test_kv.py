import asyncio
import threading

import pytest

from spawnkit.storage.kv import (
    InMemoryKVStore,
    MeteredKVStore,
    SQLiteKVStore,
    TinyDBKVStore,
    make_kv_store,
)


@pytest.fixture(params=["memory", "tinydb", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryKVStore()
    if request.param == "tinydb":
        return TinyDBKVStore(str(tmp_path / "kv.json"))
    return SQLiteKVStore(str(tmp_path / "kv.db"))


@pytest.mark.asyncio
async def test_get_put_delete(backend):
    assert await backend.get("agent:a") is None
    await backend.put("agent:a", "1")
    await backend.put("agent:a", "2")
    assert await backend.get("agent:a") == "2"
    await backend.delete("agent:a")
    assert await backend.get("agent:a") is None
    await backend.delete("agent:a")
    await backend.close()


@pytest.mark.asyncio
async def test_prefix_pages_with_cursor(backend):
    for key in ["agent:c", "agent:a", "dashboard-metrics", "agent:b", "agent:d", "agents"]:
        await backend.put(key, "{}")

    everything = await backend.list("agent:")
    assert everything.keys == ["agent:a", "agent:b", "agent:c", "agent:d"]
    assert everything.cursor is None

    first = await backend.list("agent:", limit=3)
    assert first.keys == ["agent:a", "agent:b", "agent:c"]
    assert first.cursor == "agent:c"
    second = await backend.list("agent:", cursor=first.cursor, limit=3)
    assert second.keys == ["agent:d"]
    assert second.cursor is None

    exact = await backend.list("agent:", limit=4)
    assert exact.cursor is None
    await backend.close()


@pytest.mark.asyncio
async def test_metered_store_delegates(tmp_path):
    store = make_kv_store("sqlite", str(tmp_path / "m.db"))
    assert isinstance(store, MeteredKVStore)
    await store.put("agent:x", "v")
    assert await store.get("agent:x") == "v"
    assert (await store.list("agent:")).keys == ["agent:x"]


def test_unknown_backend():
    with pytest.raises(ValueError):
        make_kv_store("redis")


@pytest.mark.asyncio
async def test_tinydb_runs_off_the_event_loop(tmp_path, monkeypatch):
    kv = TinyDBKVStore(str(tmp_path / "kv.json"))
    threads = []
    original = kv.table.get

    def spy(cond):
        threads.append(threading.get_ident())
        return original(cond)

    monkeypatch.setattr(kv.table, "get", spy)
    await kv.put("agent:a", "1")
    assert await kv.get("agent:a") == "1"
    assert threads and threading.get_ident() not in threads

    await asyncio.gather(*(kv.put(f"agent:{i:02d}", str(i)) for i in range(20)))
    page = await kv.list("agent:")
    assert len(page.keys) == 21
    await kv.close()
