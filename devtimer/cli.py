"""DevTimer CLI -- a focus timer with a small AI coach."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import typer
from pydantic import ValidationError

from devtimer import config as cfg
from devtimer import db, display
from devtimer.models import Phase, RemoteVoice, TimerState
from devtimer.relay import RelayClient
from devtimer.session import TimerSession
from devtimer.voice import LocalSpeech

app = typer.Typer(
    name="devtimer",
    help="Focus in blocks, take real breaks, and hear a short word from your coach.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    display.configure_logging(verbose)


def _relay() -> RelayClient:
    app_config = cfg.load_config()
    return RelayClient(cfg.get_relay_url(app_config), timeout=app_config.relay_timeout)


def _session() -> TimerSession:
    """Open the settings store and build a session (convenience wrapper)."""
    app_config = cfg.load_config()
    store = db.SettingsStore(db.get_connection(), debounce=app_config.persist_debounce_ms / 1000)
    relay = RelayClient(cfg.get_relay_url(app_config), timeout=app_config.relay_timeout)
    return TimerSession(
        store,
        relay,
        app_config,
        on_message=display.print_coach,
        on_tap_to_play=lambda _clip: display.print_tap_to_play(),
    )


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------


async def _run_live(session: TimerSession, action: Optional[Callable[[], None]]) -> None:
    with display.create_timer_progress() as progress:
        bar = progress.add_task("", total=1, clock="")

        def refresh(state: TimerState) -> None:
            total = session.engine.duration_seconds
            progress.update(
                bar,
                description=state.phase.label,
                total=total,
                completed=max(0, total - state.remaining_seconds),
                clock=display.format_clock(state.remaining_seconds),
            )

        if action is not None:
            await session.perform(action)
        refresh(session.state)
        await session.run(on_tick=refresh)


@app.command()
def run(
    phase: Optional[Phase] = typer.Option(None, "--phase", "-p", help="Phase to start in"),
) -> None:
    """Run the timer. Ctrl-C pauses and offers skip, reset and playback."""
    session = _session()
    session.ensure_local_voice()
    if phase is not None:
        session.engine.select_phase(phase)

    action: Optional[Callable[[], None]] = None
    try:
        while True:
            try:
                asyncio.run(_run_live(session, action))
            except KeyboardInterrupt:
                pass
            session.engine.pause()
            session.store.flush()
            display.print_status(session.state, session.config)
            choice = typer.prompt(
                "[r]esume  [s]kip  [x] reset  [p]lay audio  [q]uit", default="r"
            ).strip().lower()[:1]
            if choice == "q":
                break
            action = None
            if choice == "s":
                action = session.engine.skip
            elif choice == "x":
                action = session.engine.reset
            elif choice == "p" and not session.voice.play_pending():
                display.print_info("No audio waiting.")
    finally:
        session.close()


@app.command()
def status() -> None:
    """Show the current phase, time left and completed blocks."""
    session = _session()
    display.print_status(session.state, session.config)
    session.close()


@app.command()
def skip() -> None:
    """Finish the current phase now (counts as a completion)."""
    session = _session()
    asyncio.run(session.perform(session.engine.skip))
    session.engine.pause()
    display.print_status(session.state, session.config)
    session.close()


@app.command()
def reset() -> None:
    """Reset the countdown to the full length of the current phase."""
    session = _session()
    session.engine.reset()
    clock = display.format_clock(session.state.remaining_seconds)
    display.print_success(f"Reset {session.state.phase.label} to {clock}.")
    session.close()


@app.command()
def phase(
    name: Phase = typer.Argument(..., help="focus, short or long"),
) -> None:
    """Switch phase without counting a completion."""
    session = _session()
    session.engine.select_phase(name)
    display.print_status(session.state, session.config)
    session.close()


@app.command()
def edit(
    remaining: str = typer.Argument(..., help="New time left, e.g. 12:30"),
) -> None:
    """Set the time left on the paused countdown."""
    try:
        seconds = display.parse_clock(remaining)
    except ValueError:
        display.print_warning(f"Could not read '{remaining}'. Use MM:SS.")
        raise typer.Exit(1)

    session = _session()
    asyncio.run(session.perform(lambda: session.engine.edit_remaining(seconds)))
    session.engine.pause()
    display.print_status(session.state, session.config)
    session.close()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@app.command()
def settings(
    focus: Optional[int] = typer.Option(None, "--focus", help="Focus minutes (1-120)"),
    short: Optional[int] = typer.Option(None, "--short", help="Short break minutes (1-60)"),
    long: Optional[int] = typer.Option(None, "--long", help="Long break minutes (1-90)"),
    cycles: Optional[int] = typer.Option(None, "--cycles", help="Focus cycles per long break (1-10)"),
    model: Optional[str] = typer.Option(None, "--model", help="Relay AI model id"),
    local_ai: Optional[bool] = typer.Option(None, "--local-ai/--remote-ai", help="Generate feedback offline"),
    voice: Optional[bool] = typer.Option(None, "--voice/--no-voice", help="Speak coach messages"),
    remote_voice: Optional[RemoteVoice] = typer.Option(None, "--remote-voice", help="Relay voice"),
    local_voice: Optional[str] = typer.Option(None, "--local-voice", help="On-device voice name"),
) -> None:
    """Show or change durations, coach and voice settings."""
    session = _session()
    timer_changes = {
        k: v
        for k, v in {
            "focus_minutes": focus,
            "short_break_minutes": short,
            "long_break_minutes": long,
            "cycles_until_long": cycles,
        }.items()
        if v is not None
    }
    coach_changes = {k: v for k, v in {"model": model, "use_local_ai": local_ai}.items() if v is not None}
    voice_changes = {
        k: v
        for k, v in {
            "voice_enabled": voice,
            "remote_voice": remote_voice,
            "local_voice_name": local_voice,
        }.items()
        if v is not None
    }

    try:
        if timer_changes:
            session.update_config(**timer_changes)
        if coach_changes:
            session.update_coach(**coach_changes)
        if voice_changes:
            session.update_voice(**voice_changes)
    except ValidationError as exc:
        errors = "; ".join(f"{e['loc'][0] if e['loc'] else 'value'}: {e['msg']}" for e in exc.errors())
        display.print_warning(f"Invalid setting -- {errors}")
        session.close()
        raise typer.Exit(1)

    display.print_settings(session.config, session.coach_settings, session.voice_preferences)
    session.close()


@app.command()
def voices() -> None:
    """List on-device voices."""
    session = _session()
    selected = session.voice_preferences.local_voice_name
    session.close()
    try:
        found = LocalSpeech().voices()
    except Exception as exc:
        display.print_warning(f"On-device speech is unavailable: {exc}")
        raise typer.Exit(1)
    display.print_voices(found, selected)


# ---------------------------------------------------------------------------
# Coach
# ---------------------------------------------------------------------------


@app.command()
def tip() -> None:
    """Ask the coach for one concrete focus tip."""
    session = _session()
    asyncio.run(session.ask_focus_tip())
    session.close()


@app.command()
def summary() -> None:
    """Ask the coach to sum up your progress."""
    session = _session()
    asyncio.run(session.summarize_progress())
    session.close()


@app.command()
def health() -> None:
    """Check that the relay is up."""
    relay = _relay()
    if asyncio.run(relay.health()):
        display.print_success(f"Relay OK: {relay.base_url}")
    else:
        display.print_warning(f"Relay unavailable: {relay.base_url}")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@app.command()
def config(
    relay_url: Optional[str] = typer.Option(None, "--relay-url", help="Base URL of the relay"),
    autoplay: Optional[bool] = typer.Option(
        None, "--autoplay/--no-autoplay", help="Play synthesized speech automatically"
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Set a custom settings file path"),
    reset: bool = typer.Option(False, "--reset", help="Reset to the default settings file"),
    show: bool = typer.Option(False, "--show", help="Show current config"),
) -> None:
    """Configure the relay, playback and where settings are stored."""
    if relay_url:
        result = cfg.set_relay_url(relay_url)
        display.print_success(f"Relay set to: {result.relay_url}")
    elif autoplay is not None:
        cfg.set_autoplay(autoplay)
        display.print_success(f"Autoplay {'enabled' if autoplay else 'disabled'}.")
    elif db_path:
        result = cfg.set_db_path(db_path)
        display.print_success(f"Settings file set to: {result.db_path}")
    elif reset:
        cfg.reset_db_path()
        display.print_success("Reset to default settings file.")
    elif show:
        current = cfg.load_config()
        resolved = cfg.get_db_path()
        if current.db_path:
            display.print_info(f"Settings: {current.db_path}")
        else:
            display.print_info(f"Settings: {resolved} (default)")
        display.print_info(f"Relay: {cfg.get_relay_url(current)}")
        display.print_info(f"Autoplay: {'on' if current.autoplay else 'off'}")
    else:
        display.print_info("Use --relay-url, --autoplay, --db-path, --reset, or --show.")
