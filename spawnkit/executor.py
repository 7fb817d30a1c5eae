from __future__ import annotations

"""Validate and run tool calls under one wall-clock deadline per batch."""

import asyncio
import logging
import time
from typing import Any, Iterable, List

from prometheus_client import Counter, Histogram

from .config import settings
from .errors import AgentNotFound, ErrorKind, SpawnKitError, ToolFailed, ToolTimeout
from .models import AgentRecord, ToolCall, ToolResult
from .tools.registry import ToolRegistry
from .utils.logging import log_event
from .utils.timeutil import isoformat, utcnow
from .utils.tracing import async_span

logger = logging.getLogger(__name__)

TOOL_CALLS = Counter(
    "spawnkit_tool_calls_total",
    "Tool calls executed",
    ["tool", "result"],
)
TOOL_LATENCY = Histogram(
    "spawnkit_tool_latency_seconds",
    "Time spent running tool handlers",
    ["tool"],
)


class Deadline:
    """Absolute point in monotonic time shared by every call of a batch."""

    def __init__(self, budget_ms: int) -> None:
        self.budget_ms = budget_ms
        self.started = time.monotonic()
        self.expires = self.started + budget_ms / 1000

    @classmethod
    def start(cls, budget_ms: int | None = None) -> "Deadline":
        return cls(budget_ms if budget_ms is not None else settings.tool_deadline_ms)

    def remaining(self) -> float:
        return max(0.0, self.expires - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout_error(self) -> ToolTimeout:
        secs = max(1, round(self.budget_ms / 1000))
        return ToolTimeout(f"This tool did not finish executing in {secs} seconds, please try again later")


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_result(tool_id: str, params: dict[str, Any], text: str, now=None) -> str:
    """``toolId(k: v, k2: v2): text [ISO-8601]`` with params in given order."""
    args = ", ".join(f"{k}: {_render_value(v)}" for k, v in params.items())
    return f"{tool_id}({args}): {text} [{isoformat(now or utcnow())}]"


def failure_result(tool_id: str, params: dict[str, Any], exc: SpawnKitError) -> ToolResult:
    return ToolResult(
        tool_id=tool_id,
        success=False,
        result_text=exc.message,
        error_kind=exc.kind,
        error_field=getattr(exc, "field", None),
        formatted=format_result(tool_id, params, f"Error: {exc.message}"),
    )


class ToolExecutor:
    """Run calls against a ``ToolRegistry``.

    Validation happens in a fixed order: unknown tool, then parameters, then
    the agent record. Handlers see a copy of the record and describe their
    changes through ``ToolResult.effect``; nothing is written here.
    """

    def __init__(self, registry: ToolRegistry, deadline_ms: int | None = None) -> None:
        self.registry = registry
        self.deadline_ms = deadline_ms if deadline_ms is not None else settings.tool_deadline_ms

    def deadline(self) -> Deadline:
        return Deadline(self.deadline_ms)

    async def execute(
        self,
        tool_id: str,
        params: dict[str, Any],
        record: AgentRecord | None,
        deadline: Deadline | None = None,
    ) -> ToolResult:
        """Execute one call. Raises typed ``SpawnKitError`` subclasses on failure."""
        deadline = deadline or self.deadline()
        spec = self.registry.get(tool_id)
        parsed = self.registry.validate(tool_id, params)
        if record is None:
            raise AgentNotFound()
        if deadline.expired:
            TOOL_CALLS.labels(tool_id, "timeout").inc()
            raise deadline.timeout_error()

        context = record.model_copy(deep=True)
        start = time.perf_counter()
        async with async_span("tool.execute", tool=tool_id, agent=record.agent_id):
            try:
                outcome = await asyncio.wait_for(
                    spec.handler(parsed, context), timeout=deadline.remaining()
                )
            except asyncio.TimeoutError:
                TOOL_CALLS.labels(tool_id, "timeout").inc()
                await log_event(
                    "tool_timeout",
                    {"tool": tool_id, "agent": record.agent_id, "budget_ms": deadline.budget_ms},
                    logging.WARNING,
                )
                raise deadline.timeout_error() from None
            except SpawnKitError:
                TOOL_CALLS.labels(tool_id, "error").inc()
                raise
            except Exception as exc:  # noqa: BLE001
                TOOL_CALLS.labels(tool_id, "error").inc()
                await log_event(
                    "tool_error",
                    {"tool": tool_id, "agent": record.agent_id, "error": repr(exc)},
                    logging.ERROR,
                )
                raise ToolFailed() from exc
            finally:
                TOOL_LATENCY.labels(tool_id).observe(time.perf_counter() - start)

        TOOL_CALLS.labels(tool_id, "ok").inc()
        return ToolResult(
            tool_id=tool_id,
            success=True,
            result_text=outcome.text,
            formatted=format_result(tool_id, params, outcome.text),
            effect=outcome.effect,
        )

    async def run(
        self,
        call: ToolCall,
        record: AgentRecord | None,
        deadline: Deadline | None = None,
    ) -> ToolResult:
        """Like ``execute`` but failures become unsuccessful results."""
        try:
            return await self.execute(call.tool_id, call.params, record, deadline)
        except SpawnKitError as exc:
            logger.info("tool %s failed: %s", call.tool_id, exc.code)
            return failure_result(call.tool_id, call.params, exc)

    async def execute_batch(
        self,
        calls: Iterable[ToolCall],
        record: AgentRecord | None,
        deadline: Deadline | None = None,
    ) -> List[ToolResult]:
        """Run ``calls`` sequentially in order under a single deadline.

        Once the deadline passes every remaining call is reported as timed
        out; results already produced are kept.
        """
        deadline = deadline or self.deadline()
        results: List[ToolResult] = []
        for call in calls:
            if deadline.expired:
                results.append(failure_result(call.tool_id, call.params, deadline.timeout_error()))
                continue
            results.append(await self.run(call, record, deadline))
        return results


__all__ = [
    "Deadline",
    "ToolExecutor",
    "format_result",
    "failure_result",
    "TOOL_CALLS",
    "TOOL_LATENCY",
]
