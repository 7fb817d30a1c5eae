"""Command line interface for :mod:`spawnkit`.

This module uses `Typer` to expose commands for parsing tool calls out of
generated text, resetting agents, printing fleet statistics and running the
HTTP server.
"""

import asyncio
import json
import sys
from typing import Optional

import typer

from .config import Settings
from .errors import SpawnKitError
from .lifecycle import initialize_agent
from .parser import parse_tool_calls
from .stats import collect_stats
from .storage.agents import AgentStore
from .storage.kv import make_kv_store
from .utils.logging import configure_logging

app = typer.Typer(add_completion=False, help="Operate SpawnKit agents")


def _open_store(ctx: typer.Context) -> AgentStore:
    cfg: Settings = ctx.obj["settings"]
    return AgentStore(
        make_kv_store(ctx.obj["backend"], ctx.obj["path"]),
        max_tool_results=cfg.max_tool_results,
        max_thoughts=cfg.max_thoughts,
        note_retention=cfg.note_retention,
    )


@app.callback()
def main(
    ctx: typer.Context,
    backend: Optional[str] = typer.Option(None, help="Store backend: memory, tinydb or sqlite"),
    path: Optional[str] = typer.Option(None, help="Path for file based backends"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at the configured level"),
) -> None:
    """SpawnKit command line interface."""
    cfg = Settings.load()
    configure_logging(cfg.log_level if verbose else "WARNING")
    ctx.obj = {
        "settings": cfg,
        "backend": backend or cfg.store_backend,
        "path": path or cfg.store_path,
    }


@app.command()
def parse(
    file: Optional[typer.FileText] = typer.Argument(None, help="Text file; stdin when omitted"),
) -> None:
    """Print the tool calls found in generated text as JSON."""
    text = file.read() if file is not None else sys.stdin.read()
    calls = [
        {"toolId": c.tool_id, "params": c.params, "rawSource": c.raw_source}
        for c in parse_tool_calls(text)
    ]
    typer.echo(json.dumps(calls, indent=2))


@app.command()
def stats(ctx: typer.Context) -> None:
    """Print fleet statistics."""
    cfg: Settings = ctx.obj["settings"]
    store = _open_store(ctx)
    fleet = asyncio.run(collect_stats(store, tz=cfg.timezone, page_size=cfg.stats_page_size))
    typer.echo(fleet.model_dump_json(by_alias=True, indent=2))


@app.command()
def reset(ctx: typer.Context, agent_id: str = typer.Argument(..., help="Agent identifier")) -> None:
    """Clear an agent's turn state while keeping its memory."""
    store = _open_store(ctx)
    try:
        report = asyncio.run(initialize_agent(store, agent_id))
    except SpawnKitError as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(report.as_dict(), indent=2))


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from .server import create_app

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    app()
