import pytest
from pydantic import ValidationError

from spawnkit.config import Settings


def test_defaults(monkeypatch):
    for name in ("SPAWNKIT_TOOL_DEADLINE_MS", "SPAWNKIT_TIMEZONE", "SPAWNKIT_CONFIG_FILE"):
        monkeypatch.delenv(name, raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.tool_deadline_ms == 10_000
    assert cfg.timezone == "America/New_York"
    assert cfg.max_tool_results == 50
    assert cfg.max_thoughts is None
    assert cfg.note_retention == "filter"
    assert cfg.groq_model == "openai/gpt-oss-120b"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SPAWNKIT_TOOL_DEADLINE_MS", "2500")
    monkeypatch.setenv("SPAWNKIT_STORE_BACKEND", "sqlite")
    monkeypatch.setenv("SPAWNKIT_MAX_THOUGHTS", "25")
    cfg = Settings(_env_file=None)
    assert cfg.tool_deadline_ms == 2500
    assert cfg.store_backend == "sqlite"
    assert cfg.max_thoughts == 25


def test_load_from_config_file(monkeypatch, tmp_path):
    env_file = tmp_path / "spawnkit.env"
    env_file.write_text("SPAWNKIT_NOTE_RETENTION=purge\nSPAWNKIT_LOG_LEVEL=DEBUG\n")
    monkeypatch.setenv("SPAWNKIT_CONFIG_FILE", str(env_file))
    cfg = Settings.load()
    assert cfg.note_retention == "purge"
    assert cfg.log_level == "DEBUG"


def test_invalid_values(monkeypatch):
    monkeypatch.setenv("SPAWNKIT_STORE_BACKEND", "redis")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
    monkeypatch.delenv("SPAWNKIT_STORE_BACKEND")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, tool_deadline_ms=0)


def test_observability_fields(monkeypatch):
    monkeypatch.setenv("SPAWNKIT_LOG_PATH", "/var/log/spawnkit")
    monkeypatch.setenv("SPAWNKIT_OTEL_TRACE_URL", "http://collector:4317")
    monkeypatch.setenv("SPAWNKIT_STATS_CACHE_TTL_S", "60")
    cfg = Settings(_env_file=None)
    assert cfg.log_path == "/var/log/spawnkit"
    assert cfg.log_db is None
    assert cfg.log_max_bytes == 5_000_000
    assert cfg.otel_trace_url == "http://collector:4317"
    assert cfg.otel_exporter_url is None
    assert cfg.stats_cache_ttl_s == 60
