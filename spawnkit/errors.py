from __future__ import annotations

"""Typed failures shared by the tool pipeline, the store and the API.

Every error carries a stable ``code`` and HTTP ``status`` together with a
short public message. Internal details belong in the logs, never in
``message``.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure category recorded on a ``ToolResult``."""

    INVALID_INPUT = "INVALID_INPUT"
    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_PARAMS = "INVALID_PARAMS"
    TIMEOUT = "TIMEOUT"
    TOOL_FAILED = "TOOL_FAILED"
    STORAGE_FAILURE = "STORAGE_FAILURE"


class SpawnKitError(Exception):
    """Base class for all SpawnKit failures."""

    code = "INTERNAL_ERROR"
    status = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> ErrorKind | None:
        try:
            return ErrorKind(self.code)
        except ValueError:
            return None


class InvalidInput(SpawnKitError):
    code = "INVALID_INPUT"
    status = 400
    default_message = "Invalid request format"


class AgentNotFound(SpawnKitError):
    code = "AGENT_NOT_FOUND"
    status = 404
    default_message = "Agent not found"

    def __init__(self, agent_id: str | None = None) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found" if agent_id else None)


class AgentExists(SpawnKitError):
    code = "AGENT_EXISTS"
    status = 409
    default_message = "Agent already exists"


class UnknownTool(SpawnKitError):
    code = "UNKNOWN_TOOL"
    status = 400
    default_message = "Unknown tool"

    def __init__(self, tool_id: str) -> None:
        self.tool_id = tool_id
        super().__init__(f"Unknown tool: {tool_id}")


class InvalidParams(SpawnKitError):
    code = "INVALID_PARAMS"
    status = 400
    default_message = "Invalid parameters"

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Invalid parameter: {field}")


class ToolTimeout(SpawnKitError):
    code = "TIMEOUT"
    status = 408
    default_message = "This tool did not finish executing in 10 seconds, please try again later"


class ToolFailed(SpawnKitError):
    code = "TOOL_FAILED"
    status = 500
    default_message = "Tool execution failed"


class StorageFailure(SpawnKitError):
    code = "STORAGE_FAILURE"
    status = 500
    default_message = "Storage operation failed"


class LLMError(SpawnKitError):
    code = "LLM_ERROR"
    status = 502
    default_message = "Language model request failed"


__all__ = [
    "ErrorKind",
    "SpawnKitError",
    "InvalidInput",
    "AgentNotFound",
    "AgentExists",
    "UnknownTool",
    "InvalidParams",
    "ToolTimeout",
    "ToolFailed",
    "StorageFailure",
    "LLMError",
]
