"""Completion pipeline: what happens when a countdown hits zero.

feedback text -> speech -> next phase -> short pause -> auto-restart.
Every step tolerates failure of the one before it, so the timer keeps
cycling even with the relay down.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable, Optional

from devtimer.coach import Coach
from devtimer.encouragement import break_complete_message, focus_complete_message
from devtimer.models import FeedbackContext, Phase, VoicePreferences
from devtimer.phases import next_phase
from devtimer.timer import CountdownEngine
from devtimer.voice import VoiceCoordinator

log = logging.getLogger(__name__)


class CompletionGuard:
    """Compare-and-set token: at most one completion in flight."""

    def __init__(self) -> None:
        self._tokens = itertools.count(1)
        self._token: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._token is not None

    def acquire(self) -> Optional[int]:
        if self._token is not None:
            return None
        self._token = next(self._tokens)
        return self._token

    def release(self, token: Optional[int] = None) -> None:
        """Release; with a token, only if that token still owns the guard."""
        if token is None or token == self._token:
            self._token = None


class CompletionPipeline:
    """Listens to the engine's zero edge and drives the phase transition."""

    def __init__(
        self,
        engine: CountdownEngine,
        coach: Coach,
        voice: VoiceCoordinator,
        voice_preferences: Optional[VoicePreferences] = None,
        *,
        auto_start_delay: float = 0.1,
        on_message: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.engine = engine
        self.coach = coach
        self.voice = voice
        self.voice_preferences = voice_preferences or VoicePreferences()
        self.auto_start_delay = auto_start_delay
        self.on_message = on_message
        self.guard = CompletionGuard()
        self.pending: Optional[asyncio.Task] = None
        engine.listener = self

    # -- CompletionListener ------------------------------------------------

    def zero_reached(self) -> None:
        token = self.guard.acquire()
        if token is None:
            log.debug("Completion already in flight; ignoring zero")
            return
        loop = asyncio.get_running_loop()
        self.pending = loop.create_task(self.complete(token))

    def rearm(self) -> None:
        self.guard.release()

    # -- pipeline ------------------------------------------------------------

    async def complete(self, token: int) -> None:
        engine = self.engine
        generation = engine.generation
        config = engine.config
        origin = engine.state.phase
        advanced = False

        try:
            if origin is Phase.FOCUS:
                engine.record_focus_completion()
                default = focus_complete_message(config)
                context = FeedbackContext(
                    phase=origin,
                    focus_minutes=config.focus_minutes,
                    short_break_minutes=config.short_break_minutes,
                    long_break_minutes=config.long_break_minutes,
                    completed_focus=engine.state.completed_focus,
                    productivity_note="Session complete",
                )
            else:
                default = break_complete_message(origin, config)
                context = FeedbackContext(
                    phase=origin,
                    focus_minutes=config.focus_minutes,
                    short_break_minutes=config.short_break_minutes,
                    long_break_minutes=config.long_break_minutes,
                    completed_focus=engine.state.completed_focus,
                )

            try:
                text = await self.coach.request_feedback(context, default_message=default)
            except Exception:
                log.exception("Coach failed; using default message")
                text = default

            if engine.generation != generation:
                log.info("Discarding feedback for a %s phase that was superseded", origin.value)
                self.guard.release(token)
                return

            if self.on_message is not None:
                self.on_message(text)
            await self.voice.speak(text, self.voice_preferences)

            if engine.generation != generation:
                log.info("Timer changed while speaking; skipping automatic transition")
                self.guard.release(token)
                return

            upcoming = next_phase(origin, engine.state.completed_focus, config.cycles_until_long)
            generation = engine.advance_to(upcoming)
            advanced = True
            log.info("%s complete, next: %s", origin.label, upcoming.label)

            await asyncio.sleep(self.auto_start_delay)
            if engine.generation != generation:
                self.guard.release(token)
                return
            self.guard.release(token)
            engine.resume()
        except asyncio.CancelledError:
            if not advanced and engine.generation == generation:
                # Interrupted mid-pipeline: still land on the next phase, halted.
                engine.advance_to(
                    next_phase(origin, engine.state.completed_focus, config.cycles_until_long)
                )
            self.guard.release(token)
            raise

    async def wait(self) -> None:
        """Wait for the in-flight completion, if any."""
        if self.pending is not None and not self.pending.done():
            await self.pending
