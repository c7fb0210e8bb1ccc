"""Rich terminal formatting helpers."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table
from rich.text import Text

from devtimer.models import (
    CoachSettings,
    LocalVoice,
    Phase,
    TimerConfig,
    TimerState,
    VoicePreferences,
)

console = Console()

_PHASE_STYLE: dict[Phase, str] = {
    Phase.FOCUS: "bold magenta",
    Phase.SHORT_BREAK: "bold green",
    Phase.LONG_BREAK: "bold cyan",
}


def configure_logging(verbose: bool = False) -> None:
    """Route log records through the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


def format_clock(seconds: int) -> str:
    """MM:SS (minutes may exceed 59)."""
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def parse_clock(value: str) -> int:
    """Parse ``MM:SS``, ``H:MM:SS`` or plain seconds. Raises ValueError."""
    parts = value.strip().split(":")
    if not parts or len(parts) > 3 or any(not p.isdigit() for p in parts):
        raise ValueError(f"Not a time: {value!r}")
    seconds = 0
    for part in parts:
        seconds = seconds * 60 + int(part)
    return seconds


def print_status(state: TimerState, config: TimerConfig) -> None:
    """Print the timer dashboard."""
    style = _PHASE_STYLE[state.phase]
    total = config.seconds_for(state.phase)
    lines: list[str] = [
        f"Phase: [{style}]{state.phase.label}[/{style}]",
        f"Remaining: {format_clock(state.remaining_seconds)} of {format_clock(total)}",
        f"Completed focus blocks: {state.completed_focus}",
        "",
        f"Focus {config.focus_minutes} min · short break {config.short_break_minutes} min"
        f" · long break {config.long_break_minutes} min",
        f"Long break every {config.cycles_until_long} focus cycle"
        f"{'s' if config.cycles_until_long != 1 else ''}",
    ]
    console.print(Panel("\n".join(lines), title="DevTimer", border_style="blue"))


def print_settings(
    config: TimerConfig, coach: CoachSettings, voice: VoicePreferences
) -> None:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("setting", style="dim")
    table.add_column("value")
    table.add_row("Focus", f"{config.focus_minutes} min")
    table.add_row("Short break", f"{config.short_break_minutes} min")
    table.add_row("Long break", f"{config.long_break_minutes} min")
    table.add_row("Cycles until long break", str(config.cycles_until_long))
    table.add_row("AI model", coach.model)
    table.add_row("Local AI", "on" if coach.use_local_ai else "off")
    table.add_row("Voice", "on" if voice.voice_enabled else "off")
    table.add_row("Remote voice", voice.remote_voice.value)
    table.add_row("Local voice", voice.local_voice_name or "(system default)")
    console.print(Panel(table, title="Settings", border_style="blue"))


def print_voices(voices: list[LocalVoice], selected: str = "") -> None:
    if not voices:
        console.print(Panel("No on-device voices found.", title="Voices", border_style="dim"))
        return
    table = Table(show_header=True, box=None, pad_edge=False)
    table.add_column("")
    table.add_column("name")
    table.add_column("lang", style="dim")
    for voice in voices:
        mark = "*" if voice.name.lower() == selected.lower() else ""
        table.add_row(mark, voice.name, voice.lang)
    console.print(Panel(table, title="Voices", border_style="blue"))


def print_coach(message: str) -> None:
    """Print a coach message in a styled panel."""
    text = Text(message, justify="center")
    console.print(Panel(text, title="Coach", border_style="magenta", padding=(1, 4)))


def print_tap_to_play() -> None:
    console.print("[bold yellow]Audio ready.[/bold yellow] Press Ctrl-C and choose [bold]p[/bold] to play it.")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[blue]{message}[/blue]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]{message}[/yellow]")


def create_timer_progress() -> Progress:
    """Create a Rich progress bar for the countdown."""
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("{task.fields[clock]}"),
        console=console,
    )
