from __future__ import annotations

"""Versioned registry mapping tool identifiers to handlers and schemas."""

from dataclasses import dataclass
import logging
from typing import Any, Awaitable, Callable, Dict, List

from pydantic import BaseModel, ValidationError

from ..errors import InvalidParams, UnknownTool
from ..models import AgentRecord, AgentTool, Effect

logger = logging.getLogger(__name__)


@dataclass
class HandlerOutcome:
    """Text reported for a call plus the record mutation it requests."""

    text: str
    effect: Effect | None = None


Handler = Callable[[Any, AgentRecord], Awaitable[HandlerOutcome]]


@dataclass
class ToolSpec:
    tool_id: str
    description: str
    params_model: type[BaseModel]
    handler: Handler
    required: bool = False
    version: int = 0

    def as_agent_tool(self) -> AgentTool:
        return AgentTool(id=self.tool_id, required=self.required, description=self.description)


class ToolRegistry:
    """Keep tool specs by id. ``version`` increases on every change."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}
        self.version = 0

    def register(self, spec: ToolSpec, *, replace: bool = False) -> ToolSpec:
        if spec.tool_id in self._tools and not replace:
            raise ValueError(f"tool {spec.tool_id} already registered")
        self.version += 1
        spec.version = self.version
        self._tools[spec.tool_id] = spec
        logger.debug("registered tool %s at version %d", spec.tool_id, self.version)
        return spec

    def unregister(self, tool_id: str) -> None:
        if self._tools.pop(tool_id, None) is not None:
            self.version += 1

    def get(self, tool_id: str) -> ToolSpec:
        try:
            return self._tools[tool_id]
        except KeyError:
            raise UnknownTool(tool_id) from None

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def ids(self) -> List[str]:
        return list(self._tools)

    def required_ids(self) -> List[str]:
        return [t.tool_id for t in self._tools.values() if t.required]

    def catalog(self, *, required_only: bool = False) -> List[AgentTool]:
        return [
            t.as_agent_tool()
            for t in self._tools.values()
            if t.required or not required_only
        ]

    def validate(self, tool_id: str, params: dict[str, Any]) -> BaseModel:
        """Return parsed params or raise ``UnknownTool`` / ``InvalidParams``."""
        spec = self.get(tool_id)
        try:
            return spec.params_model.model_validate(params)
        except ValidationError as exc:
            first = exc.errors()[0]
            loc = first.get("loc") or ("params",)
            field = str(loc[0])
            raise InvalidParams(field, f"Invalid parameter {field}: {first.get('msg', 'invalid')}") from None


__all__ = ["HandlerOutcome", "Handler", "ToolSpec", "ToolRegistry"]
