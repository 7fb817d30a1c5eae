import asyncio
import logging

import pytest
from pydantic import BaseModel

from spawnkit.models import AgentRecord
from spawnkit.storage.agents import AgentStore
from spawnkit.storage.kv import InMemoryKVStore
from spawnkit.tools import default_registry
from spawnkit.tools.registry import HandlerOutcome, ToolSpec
from spawnkit.utils.logging import JSONFormatter


class EchoParams(BaseModel):
    message: str


@pytest.fixture(autouse=True)
def _drop_json_handlers():
    """Undo configure_logging calls made by the CLI."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JSONFormatter):
            root.removeHandler(handler)
    root.setLevel(logging.WARNING)


@pytest.fixture
def kv():
    return InMemoryKVStore()


@pytest.fixture
def store(kv):
    return AgentStore(kv, max_tool_results=50, max_thoughts=None, note_retention="filter")


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def make_record():
    def factory(agent_id: str = "agent-1", **kw) -> AgentRecord:
        kw.setdefault("name", "Test Agent")
        return AgentRecord(agent_id=agent_id, **kw)

    return factory


@pytest.fixture
def slow_tool():
    """Build a tool that sleeps for ``seconds`` and logs its invocations."""

    def factory(seconds: float, tool_id: str = "slow_tool", calls: list | None = None) -> ToolSpec:
        async def handler(params: EchoParams, record: AgentRecord) -> HandlerOutcome:
            if calls is not None:
                calls.append(params.message)
            await asyncio.sleep(seconds)
            return HandlerOutcome(f"slept {params.message}")

        return ToolSpec(tool_id=tool_id, description="sleeps", params_model=EchoParams, handler=handler)

    return factory
