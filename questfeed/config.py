"""Load configuration from YAML with env var substitution."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

DEFAULT_USER_AGENT = "Columbus Quest RSS Reader/1.0"
DEFAULT_DB_PATH = "data/questfeed.db"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_dotenv(path: str | Path = ".env") -> None:
    """Load a .env file into os.environ (without overwriting existing vars)."""
    env_path = Path(path)
    if not env_path.is_file():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and key not in os.environ:
                os.environ[key] = value


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} patterns in config values."""
    if isinstance(value, str):
        match = _ENV_PATTERN.search(value)
        if not match:
            return value
        if match.group(0) == value:
            return os.environ.get(match.group(1), "")
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def load_config(path: str | Path = "config.yaml") -> dict[str, Any]:
    """Load config from YAML file and resolve environment variables."""
    _load_dotenv()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return _resolve_env_vars(raw)


def get_db_path(config: dict) -> str:
    """Get database path from config."""
    return config.get("database", {}).get("path") or DEFAULT_DB_PATH


def get_fetch_config(config: dict) -> dict:
    """Client label and timeout used for feed retrieval."""
    cfg = config.get("fetch", {}) or {}
    return {
        "user_agent": cfg.get("user_agent") or DEFAULT_USER_AGENT,
        "timeout": float(cfg.get("timeout", 30)),
    }


def get_refresh_config(config: dict) -> dict:
    cfg = config.get("refresh", {}) or {}
    return {
        "max_concurrency": int(cfg.get("max_concurrency", 4)),
    }


def get_seed_feeds(config: dict) -> list[dict]:
    """Feed definitions listed under `feeds:`; entries without a url are dropped."""
    return [f for f in config.get("feeds", []) or [] if f.get("url")]
