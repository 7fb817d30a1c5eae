from __future__ import annotations

"""Persistent agent records and the transient values of the tool pipeline."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
import re
from typing import Any, Callable, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .errors import ErrorKind, InvalidInput
from .utils.timeutil import isoformat, parse_timestamp, utcnow

AGENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,100}$")


def validate_agent_id(agent_id: str) -> str:
    """Return ``agent_id`` or raise ``InvalidInput`` when malformed."""
    if not isinstance(agent_id, str) or not AGENT_ID_PATTERN.match(agent_id):
        raise InvalidInput("Invalid agent ID format")
    return agent_id


class AgentMode(str, Enum):
    DORMANT = "dormant"
    AWAKE = "awake"


class SystemNote(BaseModel):
    """Note written by ``generate_system_note``; hidden once ``expires_at`` passes."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str = Field(validation_alias=AliasChoices("message", "content"))
    created_at: str | None = None
    expires_at: str | None = None

    def is_active(self, now: datetime) -> bool:
        expires = parse_timestamp(self.expires_at)
        return expires is None or expires > now


class TurnHistoryEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: str
    timestamp: str = Field(default_factory=lambda: isoformat(utcnow()))


class AgentTool(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    required: bool = False
    description: str = ""


class AgentRecord(BaseModel):
    """Full persisted state of one agent, stored as JSON under ``agent:<id>``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    agent_id: str = Field(validation_alias=AliasChoices("agent_id", "id", "agentId"))
    name: str = ""
    description: str = ""
    mode: AgentMode = AgentMode.AWAKE
    turn_history: list[TurnHistoryEntry] = Field(default_factory=list)
    turn_prompt: str = ""
    turns_count: int = 0
    last_turn_triggered: str | None = None
    last_activity: str = Field(default_factory=lambda: isoformat(utcnow()))
    created_at: str = Field(default_factory=lambda: isoformat(utcnow()))
    system_notes: list[SystemNote] = Field(default_factory=list)
    system_thoughts: list[str] = Field(default_factory=list)
    tool_call_results: list[str] = Field(default_factory=list)
    turn_prompt_enhancement: str | None = None
    previous_day_summary: str | None = None
    pmem: list[Any] = Field(default_factory=list)
    note: list[Any] = Field(default_factory=list)
    thgt: list[Any] = Field(default_factory=list)
    tools: list[AgentTool] = Field(default_factory=list)
    version: int = 0

    @field_validator("agent_id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not AGENT_ID_PATTERN.match(value):
            raise ValueError("agent id must be 1-100 characters of [A-Za-z0-9_-]")
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _legacy_mode(cls, value: Any) -> Any:
        if value == "sleep":
            return AgentMode.DORMANT
        return value

    @field_validator("system_notes", mode="before")
    @classmethod
    def _legacy_notes(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"message": item} if isinstance(item, str) else item for item in value]
        return value

    def active_notes(self, now: datetime | None = None) -> list[SystemNote]:
        now = now or utcnow()
        return [n for n in self.system_notes if n.is_active(now)]

    def touch(self, now: datetime | None = None) -> None:
        self.last_activity = isoformat(now or utcnow())

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "AgentRecord":
        return cls.model_validate_json(raw)


def new_note(message: str, days: int, now: datetime | None = None) -> SystemNote:
    now = now or utcnow()
    return SystemNote(
        message=message,
        created_at=isoformat(now),
        expires_at=isoformat(now + timedelta(days=days)),
    )


@dataclass
class ToolCall:
    """One tool invocation extracted from generated text."""

    tool_id: str
    params: dict[str, str | int] = field(default_factory=dict)
    raw_source: str = ""

    def to_markup(self) -> str:
        """Return the exact source span this call was parsed from."""
        return self.raw_source


Effect = Callable[[AgentRecord], None]


@dataclass
class ToolResult:
    """Outcome of executing one call; ``effect`` is applied by the store only."""

    tool_id: str
    success: bool
    result_text: str
    error_kind: ErrorKind | None = None
    error_field: str | None = None
    formatted: str = ""
    effect: Effect | None = field(default=None, repr=False)


__all__ = [
    "AGENT_ID_PATTERN",
    "validate_agent_id",
    "AgentMode",
    "SystemNote",
    "TurnHistoryEntry",
    "AgentTool",
    "AgentRecord",
    "new_note",
    "ToolCall",
    "ToolResult",
    "Effect",
]
