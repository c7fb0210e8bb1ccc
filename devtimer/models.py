"""Pydantic models: single source of truth for all data types."""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_REMAINING_SECONDS: int = 24 * 60 * 60


class Phase(str, enum.Enum):
    """Timer modes, cycled by the phase state machine."""

    FOCUS = "focus"
    SHORT_BREAK = "short"
    LONG_BREAK = "long"

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]

    @property
    def is_break(self) -> bool:
        return self is not Phase.FOCUS


_PHASE_LABELS: dict[Phase, str] = {
    Phase.FOCUS: "Focus",
    Phase.SHORT_BREAK: "Short Break",
    Phase.LONG_BREAK: "Long Break",
}


class RemoteVoice(str, enum.Enum):
    """Voices accepted by the relay's speech endpoint."""

    ALLOY = "alloy"
    ECHO = "echo"
    FABLE = "fable"
    ONYX = "onyx"
    NOVA = "nova"
    SHIMMER = "shimmer"
    ARIA = "aria"
    VERSE = "verse"


class TimerConfig(BaseModel):
    """Durations (minutes) and long-break cadence."""

    model_config = ConfigDict(validate_assignment=True)

    focus_minutes: int = Field(default=25, gt=0, le=120)
    short_break_minutes: int = Field(default=5, gt=0, le=60)
    long_break_minutes: int = Field(default=15, gt=0, le=90)
    cycles_until_long: int = Field(default=4, ge=1, le=10)

    def minutes_for(self, phase: Phase) -> int:
        if phase is Phase.FOCUS:
            return self.focus_minutes
        if phase is Phase.SHORT_BREAK:
            return self.short_break_minutes
        return self.long_break_minutes

    def seconds_for(self, phase: Phase) -> int:
        return self.minutes_for(phase) * 60


class TimerState(BaseModel):
    """Live countdown state. Never persisted as a whole (is_running is transient)."""

    model_config = ConfigDict(validate_assignment=True)

    phase: Phase = Phase.FOCUS
    remaining_seconds: int = Field(default=25 * 60, ge=0, le=MAX_REMAINING_SECONDS)
    is_running: bool = False
    completed_focus: int = Field(default=0, ge=0)


class VoicePreferences(BaseModel):
    """How (and whether) coach messages are spoken."""

    model_config = ConfigDict(validate_assignment=True)

    remote_voice: RemoteVoice = RemoteVoice.ALLOY
    local_voice_name: str = ""
    voice_enabled: bool = True


class CoachSettings(BaseModel):
    """Which model the relay should use, or whether to stay offline."""

    model_config = ConfigDict(validate_assignment=True)

    model: str = Field(default="gpt-4o-mini", min_length=1)
    use_local_ai: bool = False


class FeedbackContext(BaseModel):
    """Transient context serialized into the coach prompt."""

    phase: Phase
    focus_minutes: int
    short_break_minutes: int
    long_break_minutes: Optional[int] = None
    completed_focus: int = Field(default=0, ge=0)
    productivity_note: Optional[str] = None


class LocalVoice(BaseModel):
    """An on-device speech voice."""

    id: str
    name: str
    lang: str = ""


class AppConfig(BaseModel):
    """Application configuration (persisted to ~/.config/devtimer/config.json)."""

    db_path: Optional[str] = None  # None = use default (~/.local/share/devtimer/)
    relay_url: str = "http://localhost:8787"
    relay_timeout: float = Field(default=15.0, gt=0)
    autoplay: bool = True
    auto_start_delay_ms: int = Field(default=100, ge=0)
    persist_debounce_ms: int = Field(default=500, ge=0)
