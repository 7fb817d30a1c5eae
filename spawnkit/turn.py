from __future__ import annotations

"""One agent cycle: generated text in, tool results folded into the record."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from pydantic import ValidationError

from .errors import InvalidInput
from .executor import Deadline, ToolExecutor
from .llm import ChatMessage, ChatOptions, GroqClient
from .models import AgentRecord, ToolCall, ToolResult, TurnHistoryEntry
from .parser import parse_tool_calls
from .storage.agents import AgentStore, apply_tool_result
from .utils.logging import log_event
from .utils.timeutil import isoformat, utcnow
from .utils.tracing import async_span


@dataclass
class TurnOutcome:
    agent_id: str
    response: str
    calls: List[ToolCall] = field(default_factory=list)
    results: List[ToolResult] = field(default_factory=list)
    record: AgentRecord | None = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "agentId": self.agent_id,
            "response": self.response,
            "toolCalls": [{"toolId": c.tool_id, "params": c.params} for c in self.calls],
            "toolResults": [r.formatted for r in self.results],
            "turnsCount": self.record.turns_count if self.record else 0,
        }


class TurnRunner:
    """Parse generated text, run its tool calls and commit the outcome.

    Everything a turn changes lands in one store update: tool effects and
    formatted results in parse order, the turn history entries and the turn
    counters.
    """

    def __init__(
        self,
        store: AgentStore,
        executor: ToolExecutor,
        llm: GroqClient | None = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.llm = llm

    async def apply(
        self,
        agent_id: str,
        response: str,
        *,
        prompt: str | None = None,
        deadline: Deadline | None = None,
    ) -> TurnOutcome:
        deadline = deadline or self.executor.deadline()
        async with async_span("turn.apply", agent=agent_id):
            record = await self.store.require(agent_id)
            calls = parse_tool_calls(response)
            results = await self.executor.execute_batch(calls, record, deadline)

            def mutate(rec: AgentRecord) -> AgentRecord:
                now = utcnow()
                if prompt:
                    rec.turn_history.append(TurnHistoryEntry(role="user", content=prompt, timestamp=isoformat(now)))
                rec.turn_history.append(TurnHistoryEntry(role="assistant", content=response, timestamp=isoformat(now)))
                for result in results:
                    if result.success and result.effect is not None:
                        result.effect(rec)
                    rec = apply_tool_result(rec, result.formatted, self.store.max_tool_results)
                rec.turns_count += 1
                rec.last_turn_triggered = isoformat(now)
                rec.touch(now)
                return rec

            updated = await self.store.update(agent_id, mutate)
        await log_event(
            "turn_applied",
            {
                "agent": agent_id,
                "calls": len(calls),
                "failed": sum(not r.success for r in results),
            },
        )
        return TurnOutcome(agent_id, response, calls, results, updated)

    async def generate(
        self,
        agent_id: str,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        options: ChatOptions | None = None,
    ) -> TurnOutcome:
        """Ask the language model for a response and apply it as a turn.

        ``messages`` is the complete prompt; building it is the caller's job.
        Plain mappings are validated as :class:`ChatMessage` and a malformed
        one raises ``InvalidInput``.
        """
        if self.llm is None:
            raise RuntimeError("TurnRunner has no language model client")
        try:
            chat = [ChatMessage.model_validate(m) for m in messages]
        except ValidationError as exc:
            raise InvalidInput("Invalid chat messages") from exc
        await self.store.require(agent_id)
        result = await self.llm.complete([m.model_dump() for m in chat], options)
        prompt = next((m.content for m in reversed(chat) if m.role == "user"), None)
        # the tool budget starts once the model has answered
        deadline = self.executor.deadline()
        return await self.apply(agent_id, result.content, prompt=prompt, deadline=deadline)


__all__ = ["TurnOutcome", "TurnRunner"]
