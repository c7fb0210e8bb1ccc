"""Fixed coaching texts: fallbacks for when the relay can't answer.

The completion defaults are used verbatim whenever AI feedback fails; the
local tips back the offline ("local AI") mode.
"""

from __future__ import annotations

import random

from devtimer.models import FeedbackContext, Phase, TimerConfig

_LOCAL_TIPS: list[str] = [
    "Set one 25-min goal and close all tabs not needed.",
    "Silence notifications and enable do-not-disturb.",
    "Write a 3-bullet plan, then start with bullet #1.",
    "Use headphones with a single playlist for focus.",
    "Stand up, breathe 3 times, then commit to 10 solid minutes.",
]

GENERIC_BREAK_FEEDBACK = (
    "Keep your momentum: short stretch, then ease back into your next focus sprint."
)

FOCUS_TIP_QUESTION = "Give me one concrete tip to stay focused for the next block."
FOCUS_TIP_DEFAULT = (
    "Try the 3-2-1 launch: 3 deep breaths, 2 distractions removed, 1 clear goal."
)

SUMMARY_QUESTION = "Summarize my productivity today in two sentences."


def get_local_tip() -> str:
    """Return one of the offline focus tips at random."""
    return random.choice(_LOCAL_TIPS)


def focus_complete_message(config: TimerConfig) -> str:
    return (
        f"Great work! You finished a {config.focus_minutes}-minute focus block. "
        f"Take a {config.short_break_minutes}-minute stretch break to reset your mind."
    )


def break_complete_message(phase: Phase, config: TimerConfig) -> str:
    if phase is Phase.SHORT_BREAK:
        return f"Break done! Get ready for another {config.focus_minutes}-minute deep-focus sprint"
    return (
        f"Long break complete. Easing back into a {config.focus_minutes}-minute "
        "focus block will keep momentum."
    )


def summary_message(completed_focus: int) -> str:
    return (
        f"You've completed {completed_focus} focus cycle(s). Keep the cadence; "
        "a short stretch and hydration before the next block will keep your energy steady."
    )


def local_focus_feedback(context: FeedbackContext) -> str:
    return (
        f"Great work! You finished a {context.focus_minutes}-minute focus block. "
        f"Take a {context.short_break_minutes}-minute stretch and hydrate. "
        "Prep 1 small next step for a smooth restart."
    )
