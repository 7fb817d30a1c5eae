from __future__ import annotations

"""JSON logging for SpawnKit.

Two channels exist. ``configure_logging`` sets up the stdlib root logger with
a JSON formatter for ordinary module loggers. ``log_event`` renders structured
events with structlog and appends them to ``<log_path>/events.log`` (or an
SQLite table when ``log_db`` is set). Both come from :class:`Settings` and are
re-read on every event. Without either target the rendered line goes to the
``spawnkit.events`` logger.
"""

from datetime import datetime, timezone
import json
import logging
import os
from typing import Any, MutableMapping

import aiofiles  # type: ignore
import aiofiles.os  # type: ignore
import aiosqlite  # type: ignore
import structlog
from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.resources import Resource

from ..config import Settings, settings

logger = structlog.get_logger()
events_logger = logging.getLogger("spawnkit.events")

# Optional OpenTelemetry counter when an exporter URL is provided
OTEL_EVENT_COUNTER = None
if settings.otel_exporter_url:
    resource = Resource.create({"service.name": "spawnkit"})
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=settings.otel_exporter_url, timeout=5)
    )
    provider = MeterProvider(metric_readers=[reader], resource=resource)
    metrics.set_meter_provider(provider)
    meter = metrics.get_meter(__name__)
    OTEL_EVENT_COUNTER = meter.create_counter("spawnkit_log_events")


class JSONFormatter(logging.Formatter):
    """Format logs as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger to output JSON formatted logs."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


async def _rotate(path: str, max_bytes: int) -> None:
    if await aiofiles.os.path.exists(path):
        stat = await aiofiles.os.stat(path)
        if stat.st_size > max_bytes:
            ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            await aiofiles.os.rename(path, f"{path}.{ts}")


def render_event(event: str, data: dict[str, Any]) -> str:
    """Return ``event`` and ``data`` as a timestamped JSON line."""
    record: MutableMapping[str, Any] = {"event": event, **data}
    record = structlog.processors.TimeStamper(key="timestamp", fmt="iso", utc=True)(logger, "info", record)
    return str(structlog.processors.JSONRenderer()(logger, "info", record))


async def log_event(event: str, data: dict[str, Any], level: int = logging.INFO) -> None:
    """Write a structured event as one JSON line."""
    json_line = render_event(event, data)

    if OTEL_EVENT_COUNTER is not None:
        OTEL_EVENT_COUNTER.add(1, {"event": event})

    cfg = Settings.load()
    if cfg.log_db:
        async with aiosqlite.connect(cfg.log_db) as db:
            await db.execute("CREATE TABLE IF NOT EXISTS events (json TEXT)")
            await db.execute("INSERT INTO events (json) VALUES (?)", (json_line,))
            await db.commit()
        return

    log_dir = cfg.log_path
    if not log_dir:
        events_logger.log(level, json_line)
        return

    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, "events.log")
    await _rotate(path, cfg.log_max_bytes)
    async with aiofiles.open(path, "a") as f:
        await f.write(json_line + "\n")


__all__ = ["JSONFormatter", "configure_logging", "log_event", "render_event", "logger"]
