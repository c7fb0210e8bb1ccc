"""AI coach: turns timer context into a short line of encouragement."""

from __future__ import annotations

import logging
from typing import Optional

from devtimer.encouragement import (
    GENERIC_BREAK_FEEDBACK,
    get_local_tip,
    local_focus_feedback,
)
from devtimer.models import CoachSettings, FeedbackContext, Phase
from devtimer.relay import RelayClient, RelayError

log = logging.getLogger(__name__)

COACH_ROLE = "You are a concise, encouraging productivity coach."
COACH_INSTRUCTION = (
    "If the user just finished a focus block, suggest a short, body-friendly break "
    "and one small setup action for the next sprint. Keep it under 280 characters."
)

# Canned reply for a one-minute focus test run, so the whole completion
# flow can be demoed without the relay.
DEMO_FEEDBACK = (
    "Great 1-min test! Take a quick stretch. Roll your shoulders, look away from "
    "the screen. When you're back, you're ready for a real focus session."
)


def build_prompt(context: FeedbackContext, question: Optional[str] = None) -> str:
    """Single prompt string: role, serialized context, instruction, question."""
    prompt = (
        f"{COACH_ROLE}\n"
        f"Context: {context.model_dump_json(exclude_none=True)}\n"
        f"Instruction: {COACH_INSTRUCTION}"
    )
    if question:
        prompt = f"{prompt}\nUser request: {question}"
    return prompt


def is_demo_context(context: FeedbackContext, question: Optional[str] = None) -> bool:
    return context.phase is Phase.FOCUS and context.focus_minutes == 1 and not question


def local_coach(context: FeedbackContext, has_question: bool, fallback: str = "") -> str:
    """Offline feedback; no network involved."""
    if has_question:
        return get_local_tip()
    if context.phase is Phase.FOCUS:
        return local_focus_feedback(context)
    return fallback or GENERIC_BREAK_FEEDBACK


class Coach:
    """Requests feedback from the relay, or locally, never raising."""

    def __init__(self, relay: RelayClient, settings: Optional[CoachSettings] = None) -> None:
        self.relay = relay
        self.settings = settings or CoachSettings()

    async def request_feedback(
        self,
        context: FeedbackContext,
        *,
        default_message: str,
        question: Optional[str] = None,
    ) -> str:
        """Feedback text for ``context``; ``default_message`` on any failure."""
        if is_demo_context(context, question):
            return DEMO_FEEDBACK

        if self.settings.use_local_ai:
            return local_coach(context, bool(question), default_message)

        prompt = build_prompt(context, question)
        try:
            text = await self.relay.generate_text(prompt, self.settings.model)
        except RelayError as exc:
            log.warning("AI feedback failed, using default message: %s", exc)
            return default_message
        return text or default_message
