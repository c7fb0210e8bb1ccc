"""SQLite settings store. Loaders return Pydantic models."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from devtimer.config import get_db_path as _config_get_db_path
from devtimer.models import (
    CoachSettings,
    Phase,
    TimerConfig,
    TimerState,
    VoicePreferences,
)

log = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

# model field -> settings key
TIMER_CONFIG_KEYS: dict[str, str] = {
    "focus_minutes": "focus_minutes",
    "short_break_minutes": "short_break_minutes",
    "long_break_minutes": "long_break_minutes",
    "cycles_until_long": "cycles_until_long",
}
TIMER_STATE_KEYS: dict[str, str] = {
    "phase": "phase",
    "remaining_seconds": "remaining_seconds",
    "completed_focus": "completed_focus",
}
VOICE_KEYS: dict[str, str] = {
    "remote_voice": "remote_voice",
    "local_voice_name": "local_voice_name",
    "voice_enabled": "voice_enabled",
}
COACH_KEYS: dict[str, str] = {
    "model": "ai_model",
    "use_local_ai": "use_local_ai",
}

_M = TypeVar("_M", bound=BaseModel)

_MISSING = object()


def _get_db_path() -> Path:
    """Return the database file path from config (or default)."""
    return _config_get_db_path()


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Open a connection and ensure the schema exists."""
    path = db_path or _get_db_path()
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.executescript(_SCHEMA)
    return conn


# ---------------------------------------------------------------------------
# Raw key/value access
# ---------------------------------------------------------------------------


def get_setting(conn: sqlite3.Connection, key: str, default: Any = None) -> Any:
    """Fetch one decoded value, or ``default`` when missing or corrupt."""
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    try:
        return json.loads(row["value"])
    except json.JSONDecodeError:
        log.warning("Corrupt value for setting %r, using default", key)
        return default


def set_setting(conn: sqlite3.Connection, key: str, value: Any) -> None:
    """Store a single JSON-encodable value."""
    set_settings(conn, {key: value})


def set_settings(conn: sqlite3.Connection, values: dict[str, Any]) -> None:
    """Upsert several values in one transaction."""
    now = datetime.now().isoformat()
    with conn:
        conn.executemany(
            """INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at""",
            [(key, json.dumps(value), now) for key, value in values.items()],
        )


def delete_settings(conn: sqlite3.Connection, keys: list[str]) -> None:
    """Remove keys so their defaults apply again."""
    with conn:
        conn.executemany("DELETE FROM settings WHERE key = ?", [(k,) for k in keys])


def _load_model(
    conn: sqlite3.Connection,
    model: type[_M],
    keys: dict[str, str],
    defaults: Optional[dict[str, Any]] = None,
) -> _M:
    """Build ``model`` from stored keys, dropping individually invalid values."""
    data: dict[str, Any] = dict(defaults or {})
    for field_name, key in keys.items():
        value = get_setting(conn, key, _MISSING)
        if value is not _MISSING:
            data[field_name] = value
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        bad = {err["loc"][0] for err in exc.errors() if err["loc"]}
        log.warning("Ignoring invalid stored settings for %s: %s", model.__name__, sorted(bad))
        fallback = dict(defaults or {})
        fallback.update({k: v for k, v in data.items() if k not in bad})
        try:
            return model.model_validate(fallback)
        except ValidationError:
            return model.model_validate(defaults or {})


def _dump(model: BaseModel, keys: dict[str, str]) -> dict[str, Any]:
    data = model.model_dump(mode="json")
    return {key: data[field_name] for field_name, key in keys.items()}


# ---------------------------------------------------------------------------
# Debounced store
# ---------------------------------------------------------------------------


class SettingsStore:
    """Typed, debounced view over the settings table.

    Writes are coalesced for ``debounce`` seconds while an asyncio loop is
    running and written immediately otherwise. Storage failures are logged
    and swallowed; in-memory state stays authoritative for the session.
    """

    def __init__(self, conn: sqlite3.Connection, debounce: float = 0.5) -> None:
        self.conn = conn
        self.debounce = debounce
        self._pending: dict[str, Any] = {}
        self._handle: Optional[asyncio.TimerHandle] = None

    # -- loading -----------------------------------------------------------

    def load_timer_config(self) -> TimerConfig:
        return _load_model(self.conn, TimerConfig, TIMER_CONFIG_KEYS)

    def load_timer_state(self, config: TimerConfig) -> TimerState:
        """Restore phase, remaining time and count; never restores running."""
        phase = _load_model(self.conn, TimerState, {"phase": "phase"}).phase
        state = _load_model(
            self.conn,
            TimerState,
            TIMER_STATE_KEYS,
            defaults={"phase": phase, "remaining_seconds": config.seconds_for(phase)},
        )
        state.is_running = False
        return state

    def load_voice_preferences(self) -> VoicePreferences:
        return _load_model(self.conn, VoicePreferences, VOICE_KEYS)

    def load_coach_settings(self) -> CoachSettings:
        return _load_model(self.conn, CoachSettings, COACH_KEYS)

    # -- saving ------------------------------------------------------------

    def save_timer_config(self, config: TimerConfig) -> None:
        self.schedule(_dump(config, TIMER_CONFIG_KEYS))

    def save_timer_state(self, state: TimerState) -> None:
        self.schedule(_dump(state, TIMER_STATE_KEYS))

    def save_voice_preferences(self, prefs: VoicePreferences) -> None:
        self.schedule(_dump(prefs, VOICE_KEYS))

    def save_coach_settings(self, settings: CoachSettings) -> None:
        self.schedule(_dump(settings, COACH_KEYS))

    def schedule(self, values: dict[str, Any]) -> None:
        """Queue values for writing, restarting the debounce window."""
        self._pending.update(values)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.debounce, self.flush)

    def flush(self) -> None:
        """Write everything pending now."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._pending:
            return
        values, self._pending = self._pending, {}
        try:
            set_settings(self.conn, values)
        except sqlite3.Error as exc:
            log.warning("Could not persist settings %s: %s", sorted(values), exc)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def close(self) -> None:
        self.flush()
        self.conn.close()
