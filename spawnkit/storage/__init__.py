"""Key-value backends and the agent record store."""

from .agents import METRICS_KEY, AgentStore, apply_tool_result
from .kv import BaseKVStore, InMemoryKVStore, KeyPage, SQLiteKVStore, TinyDBKVStore, make_kv_store

__all__ = [
    "METRICS_KEY",
    "AgentStore",
    "apply_tool_result",
    "BaseKVStore",
    "InMemoryKVStore",
    "KeyPage",
    "SQLiteKVStore",
    "TinyDBKVStore",
    "make_kv_store",
]
