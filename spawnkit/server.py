from __future__ import annotations

"""HTTP API over the agent store and the tool pipeline."""

import asyncio
import logging
from typing import Annotated, Any, Dict, List

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .errors import InvalidInput, SpawnKitError, StorageFailure, ToolTimeout
from .executor import Deadline, ToolExecutor
from .lifecycle import initialize_agent
from .llm import ChatMessage, ChatOptions, GroqClient
from .models import AGENT_ID_PATTERN, AgentMode, AgentRecord, validate_agent_id
from .stats import FleetStats, cached_stats, collect_stats
from .storage.agents import AgentStore, apply_tool_result
from .storage.kv import make_kv_store
from .tools import default_registry
from .tools.registry import ToolRegistry
from .turn import TurnRunner
from .utils.logging import log_event
from .utils.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter("spawnkit_requests_total", "Total HTTP requests", ["path"])

_AGENT_ID = AGENT_ID_PATTERN.pattern

LayerEntry = Annotated[str, Field(min_length=1, max_length=1000)]


class ProcessToolRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    agentId: str = Field(pattern=_AGENT_ID)
    toolId: str = Field(min_length=1, max_length=100)
    params: Dict[str, Any] = Field(default_factory=dict)


class CreateAgentRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    agentId: str = Field(pattern=_AGENT_ID)
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    mode: AgentMode = AgentMode.AWAKE
    turnPrompt: str = ""
    pmem: List[LayerEntry] = Field(default_factory=list)
    note: List[LayerEntry] = Field(default_factory=list)
    thgt: List[LayerEntry] = Field(default_factory=list)


class TurnRequest(BaseModel):
    response: str
    prompt: str | None = None


class GenerateRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)
    model: str | None = None
    temperature: float = Field(0.7, ge=0, le=2)
    maxTokens: int = Field(2048, gt=0)
    reasoningEffort: str = Field("medium", pattern="^(low|medium|high)$")


def _error_body(exc: SpawnKitError) -> Dict[str, Any]:
    if isinstance(exc, ToolTimeout):
        return {"success": False, "result": exc.message, "error": "Timeout", "code": exc.code}
    body: Dict[str, Any] = {"success": False, "result": "", "error": exc.message, "code": exc.code}
    field = getattr(exc, "field", None)
    if field:
        body["field"] = field
    return body


def _fallback_stats(tz: str) -> Dict[str, Any]:
    body = FleetStats(system_time=isoformat(utcnow()), timezone=tz).model_dump(by_alias=True)
    body["error"] = "Failed to fetch stats"
    return body


def create_app(
    store: AgentStore | None = None,
    *,
    config: Settings | None = None,
    registry: ToolRegistry | None = None,
    llm: GroqClient | None = None,
) -> FastAPI:
    """Create and return the FastAPI application."""
    cfg = config or Settings.load()
    if store is None:
        store = AgentStore(
            make_kv_store(cfg.store_backend, cfg.store_path),
            max_tool_results=cfg.max_tool_results,
            max_thoughts=cfg.max_thoughts,
            note_retention=cfg.note_retention,
        )
    registry = registry or default_registry()
    executor = ToolExecutor(registry, cfg.tool_deadline_ms)
    runner = TurnRunner(store, executor, llm or GroqClient(cfg.groq_api_key, base_url=cfg.groq_base_url, model=cfg.groq_model))

    app = FastAPI(title="SpawnKit")
    app.state.store = store
    app.state.registry = registry
    app.state.executor = executor
    app.state.runner = runner
    app.state.settings = cfg
    FastAPIInstrumentor.instrument_app(app)

    async def require_auth(authorization: str | None = Header(None)) -> None:
        if cfg.api_key is None:
            return
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})
        if authorization.split(" ", 1)[1] != cfg.api_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(SpawnKitError)
    async def spawnkit_error(request, exc: SpawnKitError) -> JSONResponse:
        level = logging.ERROR if exc.status >= 500 else logging.INFO
        logger.log(level, "%s %s failed with %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.status, content=_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request, exc: RequestValidationError) -> JSONResponse:
        logger.info("%s %s rejected: %d validation errors", request.method, request.url.path, len(exc.errors()))
        return JSONResponse(status_code=400, content=_error_body(InvalidInput()))

    @app.on_event("shutdown")
    async def _close_store() -> None:
        await store.kv.close()

    @app.middleware("http")
    async def record_metrics(request, call_next):
        REQUEST_COUNT.labels(request.url.path.split("/")[1] or "root").inc()
        return await call_next(request)

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/tools")
    async def list_tools(_: None = Depends(require_auth)) -> Dict[str, Any]:
        return {
            "version": registry.version,
            "tools": [t.model_dump() for t in registry.catalog()],
        }

    @app.get("/agents/{agent_id}/check-availability")
    async def check_availability(agent_id: str, _: None = Depends(require_auth)) -> Dict[str, bool]:
        exists = await store.exists(agent_id)
        return {"exists": exists, "available": not exists}

    @app.post("/agents/{agent_id}/initialize")
    async def initialize(agent_id: str, _: None = Depends(require_auth)) -> Dict[str, Any]:
        validate_agent_id(agent_id)
        report = await initialize_agent(store, agent_id)
        return {
            "success": True,
            "agentId": agent_id,
            "originalData": report.original_data,
            "newData": report.new_data,
            "preservedData": report.preserved_data,
        }

    @app.post("/process-tool")
    async def process_tool(req: ProcessToolRequest, _: None = Depends(require_auth)) -> Dict[str, Any]:
        deadline = Deadline(cfg.tool_deadline_ms)

        async def run():
            record = await store.get(req.agentId)
            return await executor.execute(req.toolId, req.params, record, deadline)

        try:
            result = await asyncio.wait_for(run(), timeout=deadline.remaining())
        except asyncio.TimeoutError:
            await log_event("process_tool_timeout", {"agent": req.agentId, "tool": req.toolId}, logging.WARNING)
            raise deadline.timeout_error() from None

        def mutate(record: AgentRecord) -> AgentRecord:
            if result.effect is not None:
                result.effect(record)
            return apply_tool_result(record, result.formatted, store.max_tool_results)

        await store.update(req.agentId, mutate)
        return {"success": True, "result": result.formatted}

    @app.get("/stats")
    async def stats(_: None = Depends(require_auth)) -> JSONResponse:
        try:
            fleet = await collect_stats(store, tz=cfg.timezone, page_size=cfg.stats_page_size)
        except StorageFailure:
            return JSONResponse(status_code=500, content=_fallback_stats(cfg.timezone))
        return JSONResponse(content=fleet.model_dump(by_alias=True))

    @app.get("/dashboard-metrics")
    async def dashboard_metrics(_: None = Depends(require_auth)) -> Dict[str, Any]:
        fleet = await cached_stats(store, max_age=cfg.stats_cache_ttl_s)
        if fleet is None:
            fleet = await collect_stats(store, tz=cfg.timezone, page_size=cfg.stats_page_size)
        return fleet.model_dump(by_alias=True)

    @app.get("/agents")
    async def list_agents(
        cursor: str | None = None,
        limit: int = Query(20, ge=1, le=100),
        _: None = Depends(require_auth),
    ) -> Dict[str, Any]:
        records, next_cursor = await store.list_records(cursor, limit)
        return {"agents": [r.model_dump(mode="json") for r in records], "cursor": next_cursor}

    @app.post("/agents", status_code=201)
    async def create_agent(req: CreateAgentRequest, _: None = Depends(require_auth)) -> Dict[str, Any]:
        record = AgentRecord(
            agent_id=req.agentId,
            name=req.name,
            description=req.description,
            mode=req.mode,
            turn_prompt=req.turnPrompt,
            pmem=req.pmem,
            note=req.note,
            thgt=req.thgt,
            tools=registry.catalog(required_only=True),
        )
        record = await store.create(record)
        return {"success": True, "agent": record.model_dump(mode="json")}

    @app.get("/agents/{agent_id}")
    async def get_agent(agent_id: str, _: None = Depends(require_auth)) -> Dict[str, Any]:
        record = await store.require(agent_id)
        return record.model_dump(mode="json")

    @app.delete("/agents/{agent_id}")
    async def delete_agent(agent_id: str, _: None = Depends(require_auth)) -> Dict[str, Any]:
        if not await store.delete(agent_id):
            raise HTTPException(status_code=404, detail="Agent not found")
        return {"success": True}

    @app.post("/agents/{agent_id}/turn")
    async def apply_turn(agent_id: str, req: TurnRequest, _: None = Depends(require_auth)) -> Dict[str, Any]:
        validate_agent_id(agent_id)
        outcome = await runner.apply(agent_id, req.response, prompt=req.prompt)
        return outcome.as_dict()

    @app.post("/agents/{agent_id}/generate")
    async def generate(agent_id: str, req: GenerateRequest, _: None = Depends(require_auth)) -> Dict[str, Any]:
        validate_agent_id(agent_id)
        options = ChatOptions(
            model=req.model or cfg.groq_model,
            temperature=req.temperature,
            max_tokens=req.maxTokens,
            reasoning_effort=req.reasoningEffort,  # type: ignore[arg-type]
        )
        outcome = await runner.generate(agent_id, req.messages, options)
        return outcome.as_dict()

    return app


__all__ = ["create_app", "ProcessToolRequest", "REQUEST_COUNT"]
