"""Runtime settings loaded from environment variables and an optional YAML file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .retry import RetryConfig

ENV_PREFIX = "REELSMITH_"


@dataclass
class Settings:
    """Configuration for the orchestration service."""

    internal_api_base: str = "http://localhost:8080"
    provider: str = "stub"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    api_base: str = ""
    temperature: float = 0.2
    max_tokens: int = 4096
    max_turns: int = 20
    agent_mode: str = "pipeline"
    approval_poll_interval_seconds: float = 1.0
    approval_max_age_hours: float = 24.0
    http_timeout_seconds: float = 120.0
    auth_mode: str = "off"
    credits_enabled: bool = False
    default_credit_balance: float = 0.0
    log_level: str = "INFO"
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    extra: Dict[str, Any] = field(default_factory=dict)

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=max(self.retry_max_attempts, 1),
            base_delay=max(self.retry_base_delay_seconds, 0.0),
            max_delay=max(self.retry_max_delay_seconds, 0.0),
        )


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(base_value, value)
        else:
            merged[key] = value
    return merged


def load_yaml_config(path: Path) -> dict:
    """Load a YAML mapping; a missing file yields an empty mapping."""
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must be a mapping: {path}")
    return data


def _coerce(value: Any, target: Any) -> Any:
    if isinstance(target, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(target, int):
        return int(value)
    if isinstance(target, float):
        return float(value)
    return str(value)


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> Settings:
    """Build settings: defaults < YAML file < ``REELSMITH_*`` env vars.

    ``BASE_URL`` is honoured as a fallback for the internal API base so the
    service can share an environment with the sibling generation endpoints.
    """
    env = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}

    path_value = config_path or env.get(f"{ENV_PREFIX}CONFIG", "")
    if path_value:
        raw = _deep_merge(raw, load_yaml_config(Path(path_value)))

    defaults = Settings()
    values: Dict[str, Any] = {}
    known = {f.name for f in fields(Settings) if f.name != "extra"}
    for key, value in raw.items():
        if key in known:
            values[key] = _coerce(value, getattr(defaults, key))

    if "internal_api_base" not in values and env.get("BASE_URL"):
        values["internal_api_base"] = env["BASE_URL"]

    for name in known:
        env_value = env.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value is not None and env_value != "":
            values[name] = _coerce(env_value, getattr(defaults, name))

    extra = {key: value for key, value in raw.items() if key not in known}
    settings = Settings(**values, extra=extra)
    settings.auth_mode = settings.auth_mode.strip().lower()
    settings.agent_mode = settings.agent_mode.strip().lower()
    settings.internal_api_base = settings.internal_api_base.rstrip("/")
    return settings
