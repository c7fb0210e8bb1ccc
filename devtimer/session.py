"""Wires the settings store, engine, pipeline and coordinators together."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from devtimer import encouragement
from devtimer.coach import Coach
from devtimer.db import SettingsStore
from devtimer.models import (
    AppConfig,
    CoachSettings,
    FeedbackContext,
    Phase,
    TimerConfig,
    TimerState,
    VoicePreferences,
)
from devtimer.pipeline import CompletionPipeline
from devtimer.relay import RelayClient
from devtimer.timer import CountdownEngine
from devtimer.voice import AudioClip, LocalSpeech, RemoteSpeech, VoiceCoordinator

log = logging.getLogger(__name__)


class TimerSession:
    """One process-lifetime timer with its coach and voice."""

    def __init__(
        self,
        store: SettingsStore,
        relay: RelayClient,
        app_config: Optional[AppConfig] = None,
        *,
        local_speech: Optional[LocalSpeech] = None,
        on_message: Optional[Callable[[str], None]] = None,
        on_tap_to_play: Optional[Callable[[AudioClip], None]] = None,
    ) -> None:
        app_config = app_config or AppConfig()
        self.store = store
        self.on_message = on_message

        config = store.load_timer_config()
        state = store.load_timer_state(config)
        self.voice_preferences = store.load_voice_preferences()
        self.coach_settings = store.load_coach_settings()

        self.engine = CountdownEngine(config, state, on_change=store.save_timer_state)
        self.coach = Coach(relay, self.coach_settings)
        self.voice = VoiceCoordinator(
            RemoteSpeech(relay, autoplay=app_config.autoplay, on_blocked=on_tap_to_play),
            local_speech or LocalSpeech(),
        )
        self.pipeline = CompletionPipeline(
            self.engine,
            self.coach,
            self.voice,
            self.voice_preferences,
            auto_start_delay=app_config.auto_start_delay_ms / 1000,
            on_message=on_message,
        )

    @property
    def config(self) -> TimerConfig:
        return self.engine.config

    @property
    def state(self) -> TimerState:
        return self.engine.state

    # -- running ---------------------------------------------------------------

    async def run(self, on_tick: Optional[Callable[[TimerState], None]] = None) -> None:
        """Start (if needed) and tick until cancelled."""
        self.engine.start()
        await self.engine.run(on_tick)

    async def perform(self, action: Callable[[], Any]) -> None:
        """Apply a user action and let any completion it triggers finish."""
        action()
        await self.pipeline.wait()

    # -- settings --------------------------------------------------------------

    def update_config(self, **changes: Any) -> TimerConfig:
        """Validate and apply new durations. Raises ValidationError."""
        config = TimerConfig.model_validate({**self.config.model_dump(), **changes})
        self.engine.update_config(config)
        self.store.save_timer_config(config)
        return config

    def update_voice(self, **changes: Any) -> VoicePreferences:
        for name, value in changes.items():
            setattr(self.voice_preferences, name, value)
        self.store.save_voice_preferences(self.voice_preferences)
        return self.voice_preferences

    def update_coach(self, **changes: Any) -> CoachSettings:
        for name, value in changes.items():
            setattr(self.coach_settings, name, value)
        self.store.save_coach_settings(self.coach_settings)
        return self.coach_settings

    def ensure_local_voice(self) -> None:
        """Pick a preferred on-device voice when none is configured yet."""
        if self.voice_preferences.local_voice_name:
            return
        try:
            voice = self.voice.local.preferred_voice()
        except Exception as exc:
            log.debug("Could not list local voices: %s", exc)
            return
        if voice is not None:
            self.update_voice(local_voice_name=voice.name)

    # -- on-demand coaching ------------------------------------------------------

    async def ask_focus_tip(self) -> str:
        context = FeedbackContext(
            phase=Phase.FOCUS,
            focus_minutes=self.config.focus_minutes,
            short_break_minutes=self.config.short_break_minutes,
            completed_focus=self.state.completed_focus,
        )
        return await self._ask(
            context, encouragement.FOCUS_TIP_QUESTION, encouragement.FOCUS_TIP_DEFAULT
        )

    async def summarize_progress(self) -> str:
        context = FeedbackContext(
            phase=self.state.phase,
            focus_minutes=self.config.focus_minutes,
            short_break_minutes=self.config.short_break_minutes,
            long_break_minutes=self.config.long_break_minutes,
            completed_focus=self.state.completed_focus,
        )
        return await self._ask(
            context,
            encouragement.SUMMARY_QUESTION,
            encouragement.summary_message(self.state.completed_focus),
        )

    async def _ask(self, context: FeedbackContext, question: str, default: str) -> str:
        text = await self.coach.request_feedback(
            context, question=question, default_message=default
        )
        if self.on_message is not None:
            self.on_message(text)
        await self.voice.speak(text, self.voice_preferences)
        return text

    def close(self) -> None:
        self.voice.close()
        self.store.close()
