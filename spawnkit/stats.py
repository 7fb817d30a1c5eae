from __future__ import annotations

"""Fleet-wide metrics computed over stored agent records.

Records are consumed page by page; ``StatsAccumulator`` keeps only counters
and the newest activity timestamp so the result does not depend on how the
store splits its pages.
"""

from datetime import datetime
import json
import logging
from typing import Iterable
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .config import settings
from .models import AgentMode, AgentRecord
from .storage.agents import METRICS_KEY, AgentStore
from .utils.logging import log_event
from .utils.timeutil import isoformat, local_date, parse_timestamp, recency_label, trailing_timestamp, utcnow

logger = logging.getLogger(__name__)


class FleetStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    active_agents: int = 0
    notes_today: int = 0
    last_cycle: str = "Unknown"
    tools_executed: int = 0
    total_agents: int = 0
    system_time: str = ""
    timezone: str = "America/New_York"
    is_sample: bool = False
    skipped_records: int = 0


class CachedStats(BaseModel):
    """Stats as stored under ``dashboard-metrics`` with their computation time."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    computed_at: str
    stats: FleetStats


def sample_stats(now: datetime, tz: str) -> FleetStats:
    """Placeholder shown while no agents exist."""
    return FleetStats(
        active_agents=2,
        notes_today=8,
        last_cycle="5m ago",
        tools_executed=12,
        total_agents=3,
        system_time=now.astimezone(ZoneInfo(tz)).isoformat(),
        timezone=tz,
        is_sample=True,
    )


class StatsAccumulator:
    def __init__(self, now: datetime, tz: str) -> None:
        self.now = now
        self.tz = tz
        self.today = local_date(now, tz)
        self.seen = 0
        self.skipped = 0
        self.active = 0
        self.notes_today = 0
        self.tools_executed = 0
        self.latest: datetime | None = None

    def add(self, raw: str) -> None:
        self.seen += 1
        try:
            record = AgentRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            self.skipped += 1
            logger.warning("skipping unparsable agent record: %s", type(exc).__name__)
            return
        if record.mode is AgentMode.AWAKE:
            self.active += 1
        for note in record.system_notes:
            # legacy notes carry no creation time and count as today
            if note.created_at is None:
                self.notes_today += 1
                continue
            created = parse_timestamp(note.created_at)
            if created is not None and local_date(created, self.tz) == self.today:
                self.notes_today += 1
        for result in record.tool_call_results:
            ts = trailing_timestamp(result)
            if ts is not None and local_date(ts, self.tz) == self.today:
                self.tools_executed += 1
        activity = parse_timestamp(record.last_activity)
        if activity is not None and (self.latest is None or activity > self.latest):
            self.latest = activity

    def result(self) -> FleetStats:
        if self.seen == 0:
            return sample_stats(self.now, self.tz)
        return FleetStats(
            active_agents=self.active,
            notes_today=self.notes_today,
            last_cycle=recency_label(self.latest, self.now),
            tools_executed=self.tools_executed,
            total_agents=self.seen,
            system_time=self.now.astimezone(ZoneInfo(self.tz)).isoformat(),
            timezone=self.tz,
            is_sample=False,
            skipped_records=self.skipped,
        )


def compute_stats(
    raw_records: Iterable[str], now: datetime | None = None, tz: str | None = None
) -> FleetStats:
    """Reduce raw JSON records to ``FleetStats``."""
    acc = StatsAccumulator(now or utcnow(), tz or settings.timezone)
    for raw in raw_records:
        acc.add(raw)
    return acc.result()


async def collect_stats(
    store: AgentStore,
    now: datetime | None = None,
    *,
    tz: str | None = None,
    page_size: int | None = None,
    cache: bool = True,
) -> FleetStats:
    """Page through ``store`` and reduce every record.

    The result is cached under ``dashboard-metrics`` together with ``now``; a
    failed cache write is logged and otherwise ignored.
    """
    acc = StatsAccumulator(now or utcnow(), tz or settings.timezone)
    async for page in store.iter_raw(page_size or settings.stats_page_size):
        for raw in page:
            acc.add(raw)
    stats = acc.result()
    if acc.skipped:
        await log_event("stats_skipped_records", {"count": acc.skipped}, logging.WARNING)
    if cache:
        try:
            entry = CachedStats(computed_at=isoformat(acc.now), stats=stats)
            await store.put_cached(METRICS_KEY, entry.model_dump_json(by_alias=True))
        except Exception as exc:  # noqa: BLE001
            logger.warning("could not cache fleet stats: %r", exc)
    return stats


async def cached_stats(
    store: AgentStore, now: datetime | None = None, *, max_age: float | None = None
) -> FleetStats | None:
    """Return the cached stats, or ``None`` when they must be recomputed.

    An entry older than ``max_age`` seconds is stale, and so is a cached
    sample once any agent record exists.
    """
    raw = await store.get_cached(METRICS_KEY)
    if raw is None:
        return None
    try:
        entry = CachedStats.model_validate_json(raw)
    except ValidationError:
        return None
    computed = parse_timestamp(entry.computed_at)
    ttl = settings.stats_cache_ttl_s if max_age is None else max_age
    if computed is None or ((now or utcnow()) - computed).total_seconds() > ttl:
        return None
    if entry.stats.is_sample:
        records, _ = await store.list_page(None, 1)
        if records:
            return None
    return entry.stats


__all__ = [
    "FleetStats",
    "CachedStats",
    "sample_stats",
    "StatsAccumulator",
    "compute_stats",
    "collect_stats",
    "cached_stats",
]
