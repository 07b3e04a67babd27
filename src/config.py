"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. explicit path (CLI --config flag)
2. ORDERDESK_CONFIG environment variable
3. ./orderdesk.yaml or ./orderdesk.yml (working directory)

${VAR} and ${VAR:-default} references in YAML values resolve from the
environment at load time. Environment variables then override individual
fields: ORDERDESK_<ENGINE_FIELD> (e.g. ORDERDESK_MERGE_WINDOW_MINUTES) and
ORDERDESK_LOG_LEVEL.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "ORDERDESK_"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} and ${VAR:-default} references from the environment.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with references replaced. Missing variables without a
        default resolve to an empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), match.group(2) or "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class EngineConfig(BaseModel):
    """Tunables for the ingest decision engine."""

    merge_window_minutes: int = Field(default=120, ge=0)
    confidence_floor: float = Field(default=0.35, ge=0.0, le=1.0)
    model_timeout_seconds: float = Field(default=8.0, gt=0)
    require_address: bool = False
    disambiguation_ttl_minutes: int = Field(default=30, ge=1)
    pending_action_ttl_minutes: int = Field(default=30, ge=1)
    edit_window_minutes: int = Field(default=15, ge=0)
    # 0 disables the stale-stage reset.
    state_ttl_minutes: int = Field(default=0, ge=0)
    single_word_min_overlap: int = Field(default=1, ge=1)
    multi_word_min_overlap: int = Field(default=2, ge=1)


class OrderDeskConfig(BaseModel):
    """Top-level configuration."""

    log_level: str = "info"
    engine: EngineConfig = EngineConfig()


def _find_config_file() -> Path | None:
    """Search for a config file in the standard locations."""
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path)
    for candidate in (Path.cwd() / "orderdesk.yaml", Path.cwd() / "orderdesk.yml"):
        if candidate.exists():
            return candidate
    return None


def _coerce(value: str) -> int | float | bool | str:
    """Coerce an env string to int, float, or bool, else keep it."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply ORDERDESK_<FIELD> env var overrides to config data.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    engine_fields = set(EngineConfig.model_fields)
    engine = data.get("engine")
    if not isinstance(engine, dict):
        engine = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field = key[len(ENV_PREFIX):].lower()
        if field in engine_fields:
            engine[field] = _coerce(value)
        elif field == "log_level":
            data["log_level"] = value
    if engine:
        data["engine"] = engine
    return data


def load_config(config_path: str | None = None) -> OrderDeskConfig:
    """Load configuration from YAML with env var resolution and overrides.

    Args:
        config_path: Explicit path to a config file. If None, searches
            ORDERDESK_CONFIG then the working directory.

    Returns:
        Validated OrderDeskConfig. Defaults apply when no file is found.

    Raises:
        FileNotFoundError: An explicitly named config file does not exist.
    """
    path = Path(config_path) if config_path else _find_config_file()
    raw_data: dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return OrderDeskConfig(**data)
