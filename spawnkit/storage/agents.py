from __future__ import annotations

"""Agent record persistence.

``AgentStore`` is the only code path that writes agent records. Every write is
a full read-modify-write of one record, serialized per agent id by an
``asyncio.Lock`` so concurrent cycles for the same agent in one process do not
lose each other's updates. Writers in other processes still race with last
writer wins.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Iterable, List, Tuple
import weakref

from pydantic import ValidationError

from ..config import settings
from ..errors import AgentExists, AgentNotFound, SpawnKitError, StorageFailure
from ..models import AgentRecord, ToolResult, TurnHistoryEntry, validate_agent_id
from ..utils.logging import log_event
from ..utils.timeutil import utcnow
from .kv import BaseKVStore, InMemoryKVStore

logger = logging.getLogger(__name__)

AGENT_PREFIX = "agent:"
METRICS_KEY = "dashboard-metrics"


def agent_key(agent_id: str) -> str:
    return f"{AGENT_PREFIX}{agent_id}"


class KeyedLocks:
    """Hand out one ``asyncio.Lock`` per key, dropped once unused."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


def apply_tool_result(record: AgentRecord, formatted: str, limit: int | None = None) -> AgentRecord:
    """Return a copy of ``record`` with ``formatted`` appended to its results."""
    limit = limit if limit is not None else settings.max_tool_results
    updated = record.model_copy(deep=True)
    updated.tool_call_results.append(formatted)
    if limit and len(updated.tool_call_results) > limit:
        updated.tool_call_results = updated.tool_call_results[-limit:]
    updated.touch()
    return updated


class AgentStore:
    """Read and write ``AgentRecord`` values in a key-value backend."""

    def __init__(
        self,
        kv: BaseKVStore | None = None,
        *,
        max_tool_results: int | None = None,
        max_thoughts: int | None = None,
        note_retention: str | None = None,
    ) -> None:
        self.kv = kv or InMemoryKVStore()
        self.max_tool_results = max_tool_results if max_tool_results is not None else settings.max_tool_results
        self.max_thoughts = max_thoughts if max_thoughts is not None else settings.max_thoughts
        self.note_retention = note_retention or settings.note_retention
        self._locks = KeyedLocks()

    async def _kv(self, op: str, coro):
        try:
            return await coro
        except SpawnKitError:
            raise
        except Exception as exc:  # noqa: BLE001
            await log_event("storage_error", {"op": op, "error": repr(exc)}, logging.ERROR)
            raise StorageFailure() from exc

    async def get_raw(self, agent_id: str) -> str | None:
        return await self._kv("get", self.kv.get(agent_key(agent_id)))

    async def get(self, agent_id: str) -> AgentRecord | None:
        validate_agent_id(agent_id)
        raw = await self.get_raw(agent_id)
        if raw is None:
            return None
        try:
            return AgentRecord.from_json(raw)
        except ValidationError as exc:
            await log_event("record_corrupt", {"agent": agent_id, "error": str(exc)}, logging.ERROR)
            raise StorageFailure() from exc

    async def require(self, agent_id: str) -> AgentRecord:
        record = await self.get(agent_id)
        if record is None:
            raise AgentNotFound(agent_id)
        return record

    async def exists(self, agent_id: str) -> bool:
        validate_agent_id(agent_id)
        return await self.get_raw(agent_id) is not None

    async def _write(self, record: AgentRecord) -> None:
        await self._kv("put", self.kv.put(agent_key(record.agent_id), record.to_json()))

    async def create(self, record: AgentRecord) -> AgentRecord:
        async with self._locks.get(record.agent_id):
            if await self.get_raw(record.agent_id) is not None:
                raise AgentExists(f"Agent {record.agent_id} already exists")
            record.version = 1
            await self._write(record)
        await log_event("agent_created", {"agent": record.agent_id})
        return record

    async def save(self, record: AgentRecord) -> AgentRecord:
        """Overwrite the stored record with ``record``."""
        async with self._locks.get(record.agent_id):
            record.version += 1
            await self._write(record)
        return record

    async def delete(self, agent_id: str) -> bool:
        validate_agent_id(agent_id)
        async with self._locks.get(agent_id):
            if await self.get_raw(agent_id) is None:
                return False
            await self._kv("delete", self.kv.delete(agent_key(agent_id)))
        await log_event("agent_deleted", {"agent": agent_id})
        return True

    def _enforce_limits(self, record: AgentRecord) -> None:
        if self.max_tool_results and len(record.tool_call_results) > self.max_tool_results:
            record.tool_call_results = record.tool_call_results[-self.max_tool_results :]
        if self.max_thoughts and len(record.system_thoughts) > self.max_thoughts:
            record.system_thoughts = record.system_thoughts[-self.max_thoughts :]
        if self.note_retention == "purge":
            record.system_notes = record.active_notes(utcnow())

    async def update(
        self, agent_id: str, mutate: Callable[[AgentRecord], AgentRecord | None]
    ) -> AgentRecord:
        """Serialized read-modify-write of one record.

        ``mutate`` may change the record in place or return a replacement.
        Raises ``AgentNotFound`` when no record exists.
        """
        validate_agent_id(agent_id)
        async with self._locks.get(agent_id):
            record = await self.require(agent_id)
            replaced = mutate(record)
            if replaced is not None:
                record = replaced
            if record.agent_id != agent_id:
                raise ValueError("agent id is immutable")
            self._enforce_limits(record)
            record.version += 1
            await self._write(record)
        return record

    async def commit_results(self, agent_id: str, results: Iterable[ToolResult]) -> AgentRecord:
        """Apply every result's effect then append its formatted text, in order."""
        results = list(results)

        def mutate(record: AgentRecord) -> AgentRecord:
            for result in results:
                if result.success and result.effect is not None:
                    result.effect(record)
                record = apply_tool_result(record, result.formatted, self.max_tool_results)
            return record

        record = await self.update(agent_id, mutate)
        await log_event(
            "tool_results_committed",
            {"agent": agent_id, "count": len(results), "ok": sum(r.success for r in results)},
        )
        return record

    async def append_turn(self, agent_id: str, role: str, content: str) -> AgentRecord:
        def mutate(record: AgentRecord) -> None:
            record.turn_history.append(TurnHistoryEntry(role=role, content=content))
            record.touch()

        return await self.update(agent_id, mutate)

    async def list_page(self, cursor: str | None = None, limit: int = 50) -> Tuple[List[str], str | None]:
        """Return ``limit`` raw record JSON strings after ``cursor`` and the next cursor."""
        page = await self._kv("list", self.kv.list(AGENT_PREFIX, cursor, limit))
        raws: List[str] = []
        for key in page.keys:
            raw = await self._kv("get", self.kv.get(key))
            if raw is not None:
                raws.append(raw)
        return raws, page.cursor

    async def iter_raw(self, page_size: int | None = None) -> AsyncIterator[List[str]]:
        """Yield every stored record as pages of raw JSON strings."""
        page_size = page_size or settings.stats_page_size
        cursor: str | None = None
        while True:
            raws, cursor = await self.list_page(cursor, page_size)
            yield raws
            if cursor is None:
                break

    async def list_records(self, cursor: str | None = None, limit: int = 50) -> Tuple[List[AgentRecord], str | None]:
        """Return parsed records of one page; unreadable records are skipped."""
        raws, next_cursor = await self.list_page(cursor, limit)
        records: List[AgentRecord] = []
        for raw in raws:
            try:
                records.append(AgentRecord.from_json(raw))
            except ValidationError:
                logger.warning("skipping unreadable agent record")
        return records, next_cursor

    async def count(self) -> int:
        total = 0
        async for page in self.iter_raw():
            total += len(page)
        return total

    async def get_cached(self, key: str) -> str | None:
        return await self._kv("get", self.kv.get(key))

    async def put_cached(self, key: str, value: str) -> None:
        await self._kv("put", self.kv.put(key, value))


__all__ = [
    "AGENT_PREFIX",
    "METRICS_KEY",
    "agent_key",
    "KeyedLocks",
    "apply_tool_result",
    "AgentStore",
]
