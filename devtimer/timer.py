"""Countdown engine: one decrement per elapsed second while running."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from devtimer.models import MAX_REMAINING_SECONDS, Phase, TimerConfig, TimerState

log = logging.getLogger(__name__)


class CompletionListener(Protocol):
    """Receives the zero-crossing edge. Implemented by the completion pipeline."""

    def zero_reached(self) -> None: ...

    def rearm(self) -> None: ...


class CountdownEngine:
    """Owns ``TimerState`` and applies user actions and ticks to it.

    The engine never clears ``is_running`` on reaching zero; it only reports
    the edge to its listener, which decides what happens next.
    ``generation`` is bumped whenever the countdown is re-targeted (start,
    reset, phase selection, phase advance) so late async results can tell
    they belong to an earlier countdown.
    """

    def __init__(
        self,
        config: TimerConfig,
        state: Optional[TimerState] = None,
        on_change: Optional[Callable[[TimerState], None]] = None,
    ) -> None:
        self.config = config
        self.state = state or TimerState(remaining_seconds=config.seconds_for(Phase.FOCUS))
        self.listener: Optional[CompletionListener] = None
        self.on_change = on_change
        self.generation = 0

    @property
    def duration_seconds(self) -> int:
        """Full length of the current phase."""
        return self.config.seconds_for(self.state.phase)

    # -- user actions ------------------------------------------------------

    def start(self) -> None:
        if self.state.is_running:
            return
        if self.state.remaining_seconds == 0:
            self.state.remaining_seconds = self.duration_seconds
        self._bump()
        if self.listener is not None:
            self.listener.rearm()
        self.state.is_running = True
        log.debug("Started %s with %ss left", self.state.phase.value, self.state.remaining_seconds)
        self._changed()

    def pause(self) -> None:
        if not self.state.is_running:
            return
        self.state.is_running = False
        self._changed()

    def reset(self) -> None:
        self.state.is_running = False
        self.state.remaining_seconds = self.duration_seconds
        self._bump()
        if self.listener is not None:
            self.listener.rearm()
        self._changed()

    def skip(self) -> None:
        """Force the countdown to zero, completing the phase."""
        self._set_remaining(0)

    def edit_remaining(self, seconds: int) -> bool:
        """Set remaining time directly. Only applies while paused."""
        if self.state.is_running:
            log.debug("Ignoring manual edit while running")
            return False
        self._set_remaining(max(0, min(seconds, MAX_REMAINING_SECONDS)))
        return True

    def select_phase(self, phase: Phase) -> None:
        """Manual phase choice; bypasses completion and the cycle count."""
        self.state.phase = phase
        self._bump()
        if not self.state.is_running:
            self.state.remaining_seconds = self.duration_seconds
        self._changed()

    def update_config(self, config: TimerConfig) -> None:
        """Swap durations; an idle countdown follows the new length at once."""
        before = self.duration_seconds
        self.config = config
        if not self.state.is_running and self.duration_seconds != before:
            self.state.remaining_seconds = self.duration_seconds
        self._changed()

    # -- tick source -------------------------------------------------------

    def tick(self) -> None:
        """Apply one elapsed second."""
        if not self.state.is_running or self.state.remaining_seconds == 0:
            return
        self._set_remaining(self.state.remaining_seconds - 1)

    async def run(self, on_tick: Optional[Callable[[TimerState], None]] = None) -> None:
        """Tick once per second forever, anchored to the loop clock."""
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            deadline += 1.0
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            if loop.time() - deadline > 1.0:
                # Suspended (sleep, debugger); tolerate drift instead of bursting.
                deadline = loop.time()
            self.tick()
            if on_tick is not None:
                on_tick(self.state)

    # -- used by the completion pipeline ------------------------------------

    def record_focus_completion(self) -> int:
        self.state.completed_focus += 1
        self._changed()
        return self.state.completed_focus

    def advance_to(self, phase: Phase) -> int:
        """Enter ``phase`` with a full countdown, halted. Returns the new generation."""
        self.state.phase = phase
        self.state.remaining_seconds = self.duration_seconds
        self.state.is_running = False
        self._changed()
        return self._bump()

    def resume(self) -> None:
        self.state.is_running = True
        self._changed()

    # -- internals -----------------------------------------------------------

    def _set_remaining(self, seconds: int) -> None:
        self.state.remaining_seconds = seconds
        self._changed()
        if seconds == 0 and self.listener is not None:
            self.listener.zero_reached()

    def _bump(self) -> int:
        self.generation += 1
        return self.generation

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)
