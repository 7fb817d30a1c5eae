"""SpawnKit: tool calls embedded in generated text, applied to agent records."""

from .errors import (
    AgentExists,
    AgentNotFound,
    ErrorKind,
    InvalidInput,
    InvalidParams,
    SpawnKitError,
    StorageFailure,
    ToolFailed,
    ToolTimeout,
    UnknownTool,
)
from .executor import Deadline, ToolExecutor, format_result
from .lifecycle import ResetReport, initialize_agent
from .models import AgentMode, AgentRecord, SystemNote, ToolCall, ToolResult
from .parser import format_tool_call, parse_tool_calls
from .stats import FleetStats, collect_stats, compute_stats
from .storage import AgentStore, InMemoryKVStore, apply_tool_result, make_kv_store
from .tools import ToolRegistry, ToolSpec, default_registry
from .turn import TurnOutcome, TurnRunner

__all__ = [
    "AgentExists",
    "AgentNotFound",
    "ErrorKind",
    "InvalidInput",
    "InvalidParams",
    "SpawnKitError",
    "StorageFailure",
    "ToolFailed",
    "ToolTimeout",
    "UnknownTool",
    "Deadline",
    "ToolExecutor",
    "format_result",
    "ResetReport",
    "initialize_agent",
    "AgentMode",
    "AgentRecord",
    "SystemNote",
    "ToolCall",
    "ToolResult",
    "format_tool_call",
    "parse_tool_calls",
    "FleetStats",
    "collect_stats",
    "compute_stats",
    "AgentStore",
    "InMemoryKVStore",
    "apply_tool_result",
    "make_kv_store",
    "ToolRegistry",
    "ToolSpec",
    "default_registry",
    "TurnOutcome",
    "TurnRunner",
]
