from __future__ import annotations

"""Configuration management for SpawnKit."""

import os
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SPAWNKIT_",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging verbosity"
    )
    log_path: str | None = Field(
        None, description="Directory receiving events.log; events go to the logger when unset"
    )
    log_db: str | None = Field(None, description="SQLite file receiving events instead of log_path")
    log_max_bytes: int = Field(
        5_000_000, gt=0, description="Size at which events.log is rotated"
    )
    tool_deadline_ms: int = Field(
        10_000, gt=0, description="Wall-clock budget for one batch of tool calls"
    )
    timezone: str = Field(
        "America/New_York", description="Zone used to decide what counts as today"
    )
    store_backend: Literal["memory", "tinydb", "sqlite"] = Field(
        "memory", description="Key-value backend holding agent records"
    )
    store_path: str = Field("spawnkit.db", description="Path used by file backends")
    max_tool_results: int = Field(
        50, gt=0, description="Formatted tool results kept per agent"
    )
    max_thoughts: int | None = Field(
        None, gt=0, description="Optional cap on system thoughts kept per agent"
    )
    note_retention: Literal["filter", "purge"] = Field(
        "filter", description="Drop expired notes on write or only hide them on read"
    )
    stats_page_size: int = Field(100, gt=0, description="Records read per stats page")
    stats_cache_ttl_s: float = Field(
        300, ge=0, description="Age after which cached dashboard metrics are recomputed"
    )
    api_key: str | None = Field(None, description="Bearer token required by the API")
    groq_api_key: str | None = Field(None, description="Groq API key")
    groq_model: str = Field("openai/gpt-oss-120b", description="Default chat model")
    groq_base_url: str = Field(
        "https://api.groq.com/openai/v1", description="OpenAI-compatible base URL"
    )
    otel_exporter_url: str | None = Field(None, description="OTLP endpoint for event counters")
    otel_trace_url: str | None = Field(None, description="OTLP endpoint for traces")

    @classmethod
    def load(cls) -> "Settings":
        """Load settings using optional env file from ``SPAWNKIT_CONFIG_FILE``."""
        env_file = os.getenv("SPAWNKIT_CONFIG_FILE")
        kwargs = {"_env_file": env_file} if env_file else {}
        return cls(**kwargs)


try:
    settings = Settings.load()
except ValidationError as exc:  # pragma: no cover - fail hard on import
    raise SystemExit(f"Invalid configuration: {exc}")

__all__ = ["Settings", "settings"]
