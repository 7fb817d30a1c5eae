from __future__ import annotations

"""The four tools every agent carries."""

from pydantic import BaseModel, ConfigDict, Field

from ..models import AgentRecord, new_note
from ..utils.timeutil import utcnow
from .registry import HandlerOutcome, ToolRegistry, ToolSpec


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class NoteParams(_Params):
    message: str = Field(min_length=1, max_length=2000)
    expiration_days: int = Field(7, ge=1, le=14, alias="expirationDays")


class ThoughtParams(_Params):
    message: str = Field(min_length=1, max_length=1000)


class EnhancementParams(_Params):
    message: str = Field(min_length=1, max_length=1000)


class DaySummaryParams(_Params):
    message: str = Field(min_length=1, max_length=5000)


async def generate_system_note(params: NoteParams, record: AgentRecord) -> HandlerOutcome:
    note = new_note(params.message, params.expiration_days, utcnow())

    def effect(rec: AgentRecord) -> None:
        rec.system_notes.append(note)

    text = f'Note created: "{params.message}" (expires in {params.expiration_days} days)'
    return HandlerOutcome(text, effect)


async def generate_system_thought(params: ThoughtParams, record: AgentRecord) -> HandlerOutcome:
    def effect(rec: AgentRecord) -> None:
        rec.system_thoughts.append(params.message)

    return HandlerOutcome(f'Thought recorded: "{params.message}"', effect)


async def generate_turn_prompt_enhancement(
    params: EnhancementParams, record: AgentRecord
) -> HandlerOutcome:
    def effect(rec: AgentRecord) -> None:
        rec.turn_prompt_enhancement = params.message

    return HandlerOutcome(f'Turn prompt enhancement set: "{params.message}"', effect)


async def generate_day_summary_from_conversation(
    params: DaySummaryParams, record: AgentRecord
) -> HandlerOutcome:
    # thoughts only live until the next sleep cycle
    def effect(rec: AgentRecord) -> None:
        rec.previous_day_summary = params.message
        rec.system_thoughts = []

    return HandlerOutcome(f'Day summary created: "{params.message}"', effect)


BUILTIN_TOOLS = [
    ToolSpec(
        tool_id="generate_system_note",
        description=(
            "Creates a note that persists in system memory for the given days "
            "(1-14, default 7) and then expires.\n\n"
            "<sktool><generate_system_note><message>Your note</message>"
            "<expirationDays>7</expirationDays></generate_system_note></sktool>"
        ),
        params_model=NoteParams,
        handler=generate_system_note,
        required=True,
    ),
    ToolSpec(
        tool_id="generate_system_thought",
        description=(
            "Records a thought that persists until the next sleep cycle.\n\n"
            "<sktool><generate_system_thought><message>Your thought</message>"
            "</generate_system_thought></sktool>"
        ),
        params_model=ThoughtParams,
        handler=generate_system_thought,
        required=True,
    ),
    ToolSpec(
        tool_id="generate_turn_prompt_enhancement",
        description=(
            "Sets guidance for the next awake turn.\n\n"
            "<sktool><generate_turn_prompt_enhancement><message>Your guidance</message>"
            "</generate_turn_prompt_enhancement></sktool>"
        ),
        params_model=EnhancementParams,
        handler=generate_turn_prompt_enhancement,
        required=True,
    ),
    ToolSpec(
        tool_id="generate_day_summary_from_conversation",
        description=(
            "Summarises the day's activity in sleep mode and clears the day's thoughts.\n\n"
            "<sktool><generate_day_summary_from_conversation><message>Summary</message>"
            "</generate_day_summary_from_conversation></sktool>"
        ),
        params_model=DaySummaryParams,
        handler=generate_day_summary_from_conversation,
        required=True,
    ),
]


def default_registry() -> ToolRegistry:
    """Return a fresh registry holding the built-in tools."""
    registry = ToolRegistry()
    for spec in BUILTIN_TOOLS:
        registry.register(
            ToolSpec(
                tool_id=spec.tool_id,
                description=spec.description,
                params_model=spec.params_model,
                handler=spec.handler,
                required=spec.required,
            )
        )
    return registry
