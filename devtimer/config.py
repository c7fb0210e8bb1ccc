"""Application configuration management."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from devtimer.models import AppConfig

log = logging.getLogger(__name__)

_CONFIG_DIR = Path.home() / ".config" / "devtimer"
_DB_DIR = Path.home() / ".local" / "share" / "devtimer"

_CONFIG_FILE = _CONFIG_DIR / "config.json"

RELAY_URL_ENV = "DEVTIMER_RELAY_URL"


def load_config() -> AppConfig:
    """Load config from disk, returning defaults if none exists."""
    if _CONFIG_FILE.exists():
        try:
            data = json.loads(_CONFIG_FILE.read_text())
            return AppConfig(**data)
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            log.warning("Ignoring unreadable config %s: %s", _CONFIG_FILE, exc)
    return AppConfig()


def save_config(config: AppConfig) -> Path:
    """Write config to disk. Returns the config file path."""
    _CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    _CONFIG_FILE.write_text(config.model_dump_json(indent=2))
    return _CONFIG_FILE


def get_db_path() -> Path:
    """Resolve the settings database path from config (or default)."""
    config = load_config()
    if config.db_path is not None:
        p = Path(config.db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    _DB_DIR.mkdir(parents=True, exist_ok=True)
    return _DB_DIR / "devtimer.db"


def set_db_path(path: str) -> AppConfig:
    """Set a custom database path and save config."""
    resolved = Path(path).expanduser().resolve()
    if resolved.is_dir():
        resolved = resolved / "devtimer.db"
    resolved.parent.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config.db_path = str(resolved)
    save_config(config)
    return config


def reset_db_path() -> AppConfig:
    """Reset to the default local database path."""
    config = load_config()
    config.db_path = None
    save_config(config)
    return config


def get_relay_url(config: AppConfig | None = None) -> str:
    """Relay base URL; the environment wins over the config file."""
    override = os.environ.get(RELAY_URL_ENV)
    if override:
        return override.rstrip("/")
    config = config or load_config()
    return config.relay_url.rstrip("/")


def set_relay_url(url: str) -> AppConfig:
    """Point the coach at a different relay and save config."""
    config = load_config()
    config.relay_url = url.rstrip("/")
    save_config(config)
    return config


def set_autoplay(enabled: bool) -> AppConfig:
    """Toggle automatic playback of synthesized speech."""
    config = load_config()
    config.autoplay = enabled
    save_config(config)
    return config
