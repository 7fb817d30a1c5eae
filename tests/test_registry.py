import asyncio

import pytest

from spawnkit.errors import InvalidParams, UnknownTool
from spawnkit.models import AgentRecord
from spawnkit.tools import BUILTIN_TOOLS, default_registry
from spawnkit.tools.builtin import NoteParams


def test_default_registry_has_required_tools(registry):
    assert registry.ids() == [
        "generate_system_note",
        "generate_system_thought",
        "generate_turn_prompt_enhancement",
        "generate_day_summary_from_conversation",
    ]
    assert registry.required_ids() == registry.ids()
    assert "generate_system_note" in registry
    assert "web_search" not in registry
    assert registry.version == len(BUILTIN_TOOLS)
    assert all(t.required for t in registry.catalog(required_only=True))


def test_register_bumps_version(registry, slow_tool):
    before = registry.version
    spec = registry.register(slow_tool(0))
    assert registry.version == before + 1
    assert spec.version == registry.version
    with pytest.raises(ValueError):
        registry.register(slow_tool(0))
    registry.register(slow_tool(0), replace=True)
    assert registry.version == before + 2
    registry.unregister("slow_tool")
    assert "slow_tool" not in registry
    assert registry.version == before + 3


def test_registries_are_independent():
    a = default_registry()
    b = default_registry()
    a.unregister("generate_system_note")
    assert "generate_system_note" in b


def test_validate_unknown_tool(registry):
    with pytest.raises(UnknownTool) as err:
        registry.validate("nope", {"message": "x"})
    assert err.value.code == "UNKNOWN_TOOL"


def test_validate_reports_first_bad_field(registry):
    with pytest.raises(InvalidParams) as err:
        registry.validate("generate_system_note", {"expirationDays": 99})
    assert err.value.field == "message"

    with pytest.raises(InvalidParams) as err:
        registry.validate("generate_system_note", {"message": "ok", "expirationDays": 99})
    assert err.value.field == "expirationDays"


@pytest.mark.parametrize(
    "tool_id,params",
    [
        ("generate_system_thought", {}),
        ("generate_system_thought", {"message": ""}),
        ("generate_system_thought", {"message": "   "}),
        ("generate_system_thought", {"message": 5}),
        ("generate_system_thought", {"message": "x" * 1001}),
        ("generate_turn_prompt_enhancement", {"message": "x" * 1001}),
        ("generate_day_summary_from_conversation", {"message": "x" * 5001}),
        ("generate_system_note", {"message": "x" * 2001}),
    ],
)
def test_message_rules(registry, tool_id, params):
    with pytest.raises(InvalidParams) as err:
        registry.validate(tool_id, params)
    assert err.value.field == "message"


def test_validate_defaults_and_extras(registry):
    parsed = registry.validate("generate_system_note", {"message": " hi ", "query": "ignored"})
    assert isinstance(parsed, NoteParams)
    assert parsed.message == "hi"
    assert parsed.expiration_days == 7


def test_builtin_handlers_describe_effects(registry):
    record = AgentRecord(agent_id="a1", system_thoughts=["old"])

    async def run(tool_id, params):
        spec = registry.get(tool_id)
        outcome = await spec.handler(registry.validate(tool_id, params), record)
        outcome.effect(record)
        return outcome.text

    assert asyncio.run(run("generate_system_note", {"message": "n", "expirationDays": 2})) == (
        'Note created: "n" (expires in 2 days)'
    )
    assert record.system_notes[0].message == "n"
    assert asyncio.run(run("generate_system_thought", {"message": "t"})) == 'Thought recorded: "t"'
    assert record.system_thoughts == ["old", "t"]
    assert asyncio.run(run("generate_turn_prompt_enhancement", {"message": "e"})).startswith("Turn prompt")
    assert record.turn_prompt_enhancement == "e"
    assert asyncio.run(run("generate_day_summary_from_conversation", {"message": "s"})) == (
        'Day summary created: "s"'
    )
    assert record.previous_day_summary == "s"
    assert record.system_thoughts == []
