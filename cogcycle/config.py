"""All configuration in one place."""

import os
import yaml

CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "config.yaml")

# Known provider presets: provider_name -> default base_url
PROVIDER_PRESETS = {
    "openai": None,  # uses OpenAI default
    "openrouter": "https://openrouter.ai/api/v1",
}

# Provider-specific API key env vars (checked before OPENAI_API_KEY fallback)
PROVIDER_KEY_ENV_VARS = {
    "openrouter": "OPENROUTER_API_KEY",
}

WORKER_MODES = ("thread", "inline")
INSIGHT_STRATEGIES = ("pattern", "random", "llm")
TASK_STRATEGIES = ("goals", "random")
CONSOLIDATION_GATES = ("threshold", "random")

RENDERER_DEFAULTS = {
    "enable_math": True,
    "enable_code_highlight": True,
    "enable_tables": True,
    "sanitize_html": True,
}


def _env_number(name: str, cast):
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except ValueError:
        raise ValueError(f"{name} must be a {cast.__name__}, got {value!r}")


def validate_cycle_settings(config: dict) -> None:
    """Raise ValueError if the per-cycle settings are out of range."""
    max_tasks = config["max_tasks_per_cycle"]
    if isinstance(max_tasks, bool) or not isinstance(max_tasks, int) or max_tasks < 0:
        raise ValueError(
            f"max_tasks_per_cycle must be a non-negative integer, got {max_tasks!r}"
        )
    threshold = config["consolidation_threshold"]
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValueError(f"consolidation_threshold must be a number, got {threshold!r}")
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(
            f"consolidation_threshold must be within [0, 1], got {threshold!r}"
        )
    if config["wake_interval_seconds"] <= 0:
        raise ValueError("wake_interval_seconds must be positive")


def load_config() -> dict:
    """Load config from config.yaml, with env var overrides."""
    config = {}
    if os.path.isfile(CONFIG_PATH):
        with open(CONFIG_PATH, "r") as f:
            config = yaml.safe_load(f) or {}

    # Provider (default: openai) — only used by the llm insight strategy
    config["provider"] = os.environ.get("COGCYCLE_PROVIDER") or config.get(
        "provider", "openai"
    )
    provider = config["provider"]

    # Base URL: env var > config > provider preset
    config["base_url"] = (
        os.environ.get("COGCYCLE_BASE_URL")
        or config.get("base_url")
        or PROVIDER_PRESETS.get(provider)
    )

    # API key: provider-specific env var > OPENAI_API_KEY > config
    provider_key_var = PROVIDER_KEY_ENV_VARS.get(provider)
    config["api_key"] = (
        (os.environ.get(provider_key_var) if provider_key_var else None)
        or os.environ.get("OPENAI_API_KEY")
        or config.get("api_key")
    )

    config["model"] = os.environ.get("COGCYCLE_MODEL") or config.get(
        "model", "gpt-4o-mini"
    )

    # Cycle settings
    config.setdefault("wake_interval_seconds", 300)
    config.setdefault("max_tasks_per_cycle", 10)
    config.setdefault("consolidation_threshold", 0.5)
    config.setdefault("working_memory_capacity", 50)
    config.setdefault("review_delay_seconds", 0.1)
    config.setdefault("history_limit", 100)
    config.setdefault("liveness_window_seconds", 30)
    config.setdefault("worker_mode", "thread")
    config.setdefault("auto_start", True)
    config.setdefault("insight_strategy", "pattern")
    config.setdefault("task_strategy", "goals")
    config.setdefault("consolidation_gate", "threshold")
    config.setdefault("proposals_per_cycle", 3)
    config.setdefault("random_seed", None)
    config["goals"] = list(config.get("goals") or [])
    config["renderer"] = {**RENDERER_DEFAULTS, **(config.get("renderer") or {})}

    overrides = {
        "wake_interval_seconds": _env_number("COGCYCLE_WAKE_INTERVAL", float),
        "max_tasks_per_cycle": _env_number("COGCYCLE_MAX_TASKS", int),
        "consolidation_threshold": _env_number(
            "COGCYCLE_CONSOLIDATION_THRESHOLD", float
        ),
    }
    for key, value in overrides.items():
        if value is not None:
            config[key] = value
    config["worker_mode"] = os.environ.get("COGCYCLE_WORKER_MODE") or config[
        "worker_mode"
    ]

    # Validation
    if provider == "custom" and not config.get("base_url"):
        raise ValueError(
            "Provider 'custom' requires base_url in config.yaml or COGCYCLE_BASE_URL env var"
        )
    if config["worker_mode"] not in WORKER_MODES:
        raise ValueError(
            f"worker_mode must be one of {WORKER_MODES}, got {config['worker_mode']!r}"
        )
    for key, allowed in (
        ("insight_strategy", INSIGHT_STRATEGIES),
        ("task_strategy", TASK_STRATEGIES),
        ("consolidation_gate", CONSOLIDATION_GATES),
    ):
        if config[key] not in allowed:
            raise ValueError(f"{key} must be one of {allowed}, got {config[key]!r}")
    validate_cycle_settings(config)

    return config


# Global config — loaded once, can be updated at runtime
config = load_config()
