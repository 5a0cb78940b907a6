"""Tests for config loading."""

import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "COGCYCLE_PROVIDER",
        "COGCYCLE_BASE_URL",
        "COGCYCLE_MODEL",
        "COGCYCLE_WAKE_INTERVAL",
        "COGCYCLE_MAX_TASKS",
        "COGCYCLE_CONSOLIDATION_THRESHOLD",
        "COGCYCLE_WORKER_MODE",
        "OPENROUTER_API_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)


def _load(tmp_path, monkeypatch, text):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(text)
    monkeypatch.setattr("cogcycle.config.CONFIG_PATH", str(config_file))

    from cogcycle.config import load_config

    return load_config()


def test_defaults_applied(tmp_path, monkeypatch):
    """An empty config file should get every cycle default."""
    cfg = _load(tmp_path, monkeypatch, "")
    assert cfg["wake_interval_seconds"] == 300
    assert cfg["max_tasks_per_cycle"] == 10
    assert cfg["consolidation_threshold"] == 0.5
    assert cfg["worker_mode"] == "thread"
    assert cfg["goals"] == []
    assert cfg["renderer"]["enable_math"] is True


def test_missing_file_uses_defaults(tmp_path, monkeypatch):
    """No config.yaml at all is fine."""
    monkeypatch.setattr("cogcycle.config.CONFIG_PATH", str(tmp_path / "absent.yaml"))

    from cogcycle.config import load_config

    cfg = load_config()
    assert cfg["history_limit"] == 100
    assert cfg["provider"] == "openai"


def test_renderer_section_merges_with_defaults(tmp_path, monkeypatch):
    """A partial renderer section keeps the other flags."""
    cfg = _load(tmp_path, monkeypatch, "renderer:\n  enable_math: false\n")
    assert cfg["renderer"]["enable_math"] is False
    assert cfg["renderer"]["enable_tables"] is True


def test_env_overrides_cycle_settings(tmp_path, monkeypatch):
    """COGCYCLE_* env vars override the file."""
    monkeypatch.setenv("COGCYCLE_MAX_TASKS", "4")
    monkeypatch.setenv("COGCYCLE_CONSOLIDATION_THRESHOLD", "0.25")
    monkeypatch.setenv("COGCYCLE_WAKE_INTERVAL", "60")
    monkeypatch.setenv("COGCYCLE_WORKER_MODE", "inline")
    cfg = _load(tmp_path, monkeypatch, "max_tasks_per_cycle: 10\n")
    assert cfg["max_tasks_per_cycle"] == 4
    assert cfg["consolidation_threshold"] == 0.25
    assert cfg["wake_interval_seconds"] == 60.0
    assert cfg["worker_mode"] == "inline"


def test_threshold_out_of_range(tmp_path, monkeypatch):
    """consolidation_threshold must lie within [0, 1]."""
    with pytest.raises(ValueError, match="consolidation_threshold"):
        _load(tmp_path, monkeypatch, "consolidation_threshold: 1.5\n")


def test_negative_max_tasks(tmp_path, monkeypatch):
    """max_tasks_per_cycle must be non-negative."""
    with pytest.raises(ValueError, match="max_tasks_per_cycle"):
        _load(tmp_path, monkeypatch, "max_tasks_per_cycle: -2\n")


def test_bad_env_number(tmp_path, monkeypatch):
    """A non-numeric env override is a ValueError naming the variable."""
    monkeypatch.setenv("COGCYCLE_MAX_TASKS", "lots")
    with pytest.raises(ValueError, match="COGCYCLE_MAX_TASKS"):
        _load(tmp_path, monkeypatch, "")


def test_unknown_strategy(tmp_path, monkeypatch):
    """Strategy names are checked."""
    with pytest.raises(ValueError, match="insight_strategy"):
        _load(tmp_path, monkeypatch, "insight_strategy: tea-leaves\n")


def test_unknown_worker_mode(tmp_path, monkeypatch):
    """worker_mode is either thread or inline."""
    with pytest.raises(ValueError, match="worker_mode"):
        _load(tmp_path, monkeypatch, "worker_mode: process\n")


def test_openrouter_provider_sets_base_url(tmp_path, monkeypatch):
    """OpenRouter provider should auto-set base_url."""
    cfg = _load(tmp_path, monkeypatch, "provider: openrouter\nmodel: openai/gpt-4.1\n")
    assert cfg["base_url"] == "https://openrouter.ai/api/v1"


def test_openrouter_api_key_env_var(tmp_path, monkeypatch):
    """OPENROUTER_API_KEY should be used for openrouter provider."""
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-env-key")
    cfg = _load(tmp_path, monkeypatch, "provider: openrouter\n")
    assert cfg["api_key"] == "or-env-key"


def test_custom_provider_requires_base_url(tmp_path, monkeypatch):
    """Custom provider without base_url should raise ValueError."""
    with pytest.raises(ValueError, match="base_url"):
        _load(tmp_path, monkeypatch, "provider: custom\nmodel: llama3\n")


def test_provider_env_var_overrides(tmp_path, monkeypatch):
    """COGCYCLE_PROVIDER and COGCYCLE_BASE_URL should override config."""
    monkeypatch.setenv("COGCYCLE_PROVIDER", "custom")
    monkeypatch.setenv("COGCYCLE_BASE_URL", "http://localhost:11434/v1")
    cfg = _load(tmp_path, monkeypatch, "provider: openai\n")
    assert cfg["provider"] == "custom"
    assert cfg["base_url"] == "http://localhost:11434/v1"
