"""Phase state machine: focus -> short/long break -> focus, forever."""

from __future__ import annotations

from devtimer.models import Phase


def next_phase(origin: Phase, completed_focus: int, cycles_until_long: int) -> Phase:
    """Phase that follows a completed ``origin``.

    ``completed_focus`` is the count *after* the focus block that just ended
    was recorded. Every ``cycles_until_long``-th focus earns a long break.
    """
    if origin is not Phase.FOCUS:
        return Phase.FOCUS
    if completed_focus % cycles_until_long == 0:
        return Phase.LONG_BREAK
    return Phase.SHORT_BREAK
