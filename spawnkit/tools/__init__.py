"""Tool registry and the built-in tools."""

from .builtin import BUILTIN_TOOLS, default_registry
from .registry import HandlerOutcome, ToolRegistry, ToolSpec

__all__ = ["BUILTIN_TOOLS", "default_registry", "HandlerOutcome", "ToolRegistry", "ToolSpec"]
