from __future__ import annotations

"""Agent initialization: clear turn state, keep long-lived memory."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from .models import AgentRecord
from .storage.agents import AgentStore
from .utils.logging import log_event


@dataclass
class ResetReport:
    agent_id: str
    original_data: Dict[str, Any] = field(default_factory=dict)
    new_data: Dict[str, Any] = field(default_factory=dict)
    preserved_data: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _turn_state(record: AgentRecord) -> Dict[str, Any]:
    return {
        "turn_prompt": record.turn_prompt,
        "turn_history_length": len(record.turn_history),
        "turns_count": record.turns_count,
        "last_turn_triggered": record.last_turn_triggered,
    }


def _preserved(record: AgentRecord) -> Dict[str, int]:
    return {
        "pmem_count": len(record.pmem),
        "note_count": len(record.note),
        "thgt_count": len(record.thgt),
        "tools_count": len(record.tools),
    }


def reset_record(record: AgentRecord) -> AgentRecord:
    """Clear turn state of ``record`` in place and refresh ``last_activity``."""
    record.turn_history = []
    record.turn_prompt = ""
    record.turns_count = 0
    record.last_turn_triggered = None
    record.touch()
    return record


async def initialize_agent(store: AgentStore, agent_id: str) -> ResetReport:
    """Reset ``agent_id`` inside one serialized update.

    Raises ``AgentNotFound`` when the record does not exist. Running it twice
    leaves the record unchanged apart from ``last_activity``.
    """
    report = ResetReport(agent_id=agent_id)

    def mutate(record: AgentRecord) -> AgentRecord:
        report.original_data = _turn_state(record)
        reset_record(record)
        report.new_data = _turn_state(record)
        report.preserved_data = _preserved(record)
        return record

    await store.update(agent_id, mutate)
    await log_event("agent_initialized", {"agent": agent_id, **report.preserved_data})
    return report


__all__ = ["ResetReport", "reset_record", "initialize_agent"]
