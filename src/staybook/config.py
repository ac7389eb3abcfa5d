"""Settings for StayBook: config.yaml layered over defaults, secrets from .env."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_SETTINGS: dict[str, Any] = {
    "booking": {
        "max_discount_percent": 20,
        "event_booking_daily_hours": 8,
        "default_currency": "NGN",
    },
    "permissions": {
        "guest": [
            "user:update:own",
            "booking:read:own",
            "booking:create:own",
            "booking:update:own",
            "booking:cancel:own",
            "review:create:own",
        ],
        "staff": [
            "dashboard:read",
            "user:read",
            "listing:read",
            "booking:read",
        ],
        "admin": ["*"],
    },
    "listings": [],
}


def _find_project_root() -> Path:
    """Nearest ancestor of this package that holds a config.yaml."""
    current = Path(__file__).resolve().parent
    for _ in range(10):
        if (current / "config.yaml").exists():
            return current
        current = current.parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()


def load_env() -> None:
    load_dotenv(PROJECT_ROOT / ".env")


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_yaml_config(path: Path | None = None) -> dict[str, Any]:
    """Load config.yaml from project root, layered over the built-in defaults.

    ``STAYBOOK_CONFIG`` points at an alternative file. A missing file is only
    an error when it was asked for explicitly.
    """
    explicit = path or get_env("STAYBOOK_CONFIG")
    config_path = Path(explicit) if explicit else PROJECT_ROOT / "config.yaml"
    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"config file not found at {config_path}")
        return copy.deepcopy(DEFAULT_SETTINGS)
    with open(config_path) as f:
        loaded = yaml.safe_load(f) or {}
    return _merge(DEFAULT_SETTINGS, loaded)


def get_env(key: str, default: str | None = None) -> str | None:
    return os.environ.get(key, default)


def get_env_required(key: str) -> str:
    try:
        return os.environ[key]
    except KeyError:
        raise RuntimeError(f"{key} must be set in the environment or .env") from None


def get_database_url() -> str:
    """``DATABASE_URL``, or staybook.db next to config.yaml."""
    return get_env("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'staybook.db'}")


def booking_setting(key: str) -> Any:
    """Look up a value from the ``booking`` section."""
    return settings.get("booking", {}).get(key, DEFAULT_SETTINGS["booking"][key])


load_env()
settings: dict[str, Any] = load_yaml_config()
