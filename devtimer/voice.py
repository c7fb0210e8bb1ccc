"""Speaking coach messages: relay speech first, on-device speech second."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import pyttsx3

from devtimer.models import LocalVoice, VoicePreferences
from devtimer.relay import RelayClient

log = logging.getLogger(__name__)

# Command-line mp3 players, tried in order.
_PLAYERS: list[list[str]] = [
    ["afplay"],
    ["mpv", "--no-terminal", "--no-video"],
    ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"],
    ["mpg123", "-q"],
    ["cvlc", "--play-and-exit", "--no-video", "-q"],
]

_PREFERRED_VOICE = re.compile(r"aria|female|samantha|victoria|serena|zira", re.IGNORECASE)


class PlaybackBlocked(Exception):
    """Audio is ready but may not be played without the user asking."""


class PlaybackError(Exception):
    """Audio could not be played."""


def find_player() -> Optional[list[str]]:
    """First installed player command, or None."""
    for cmd in _PLAYERS:
        if shutil.which(cmd[0]):
            return cmd
    return None


class AudioClip:
    """A synthesized audio file plus the process playing it."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.released = False
        self._process: Optional[subprocess.Popen] = None

    @classmethod
    def from_bytes(cls, audio: bytes, suffix: str = ".mp3") -> AudioClip:
        with tempfile.NamedTemporaryFile(prefix="devtimer-", suffix=suffix, delete=False) as fh:
            fh.write(audio)
        return cls(Path(fh.name))

    def play(self) -> None:
        if self.released:
            raise PlaybackError("Audio clip was already released")
        player = find_player()
        if player is None:
            raise PlaybackBlocked("No audio player available")
        self._process = subprocess.Popen(
            [*player, str(self.path)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def stop_and_release(self) -> None:
        """Stop playback and delete the file. Safe to call twice."""
        if self._process is not None and self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._process.kill()
        self._process = None
        if not self.released:
            self.path.unlink(missing_ok=True)
            self.released = True


class SpeechBackend(Protocol):
    """One way of saying a line out loud. Raises when it cannot."""

    name: str

    async def speak(self, text: str, prefs: VoicePreferences) -> None: ...


class RemoteSpeech:
    """Relay text-to-speech. Owns the single live audio clip."""

    name = "remote"

    def __init__(
        self,
        relay: RelayClient,
        *,
        autoplay: bool = True,
        on_blocked: Optional[Callable[[AudioClip], None]] = None,
    ) -> None:
        self.relay = relay
        self.autoplay = autoplay
        self.on_blocked = on_blocked
        self.current: Optional[AudioClip] = None
        self.pending: Optional[AudioClip] = None

    async def speak(self, text: str, prefs: VoicePreferences) -> None:
        audio = await self.relay.synthesize(text, prefs.remote_voice)
        clip = AudioClip.from_bytes(audio)
        self.stop_and_release()
        self.current = clip
        try:
            if not self.autoplay:
                raise PlaybackBlocked("Autoplay is disabled")
            clip.play()
        except PlaybackBlocked as exc:
            log.info("Playback blocked (%s); waiting for tap to play", exc)
            self.pending = clip
            if self.on_blocked is not None:
                self.on_blocked(clip)

    def play_pending(self) -> bool:
        """Play the clip that autoplay held back. False if there is none."""
        clip = self.pending
        if clip is None or clip.released:
            return False
        self.pending = None
        try:
            clip.play()
        except (PlaybackBlocked, PlaybackError, OSError) as exc:
            log.warning("Tap-to-play failed: %s", exc)
            return False
        return True

    def stop_and_release(self) -> None:
        if self.current is not None:
            self.current.stop_and_release()
        self.current = None
        self.pending = None


def _voice_lang(voice: Any) -> str:
    languages = getattr(voice, "languages", None) or []
    if not languages:
        return ""
    lang = languages[0]
    if isinstance(lang, bytes):
        return lang.decode("utf-8", errors="ignore").strip("\x00\x05")
    return str(lang)


def match_voice(voices: list[Any], name: str) -> Optional[Any]:
    """Case-insensitive exact name match."""
    if not name:
        return None
    wanted = name.lower()
    for voice in voices:
        if (getattr(voice, "name", "") or "").lower() == wanted:
            return voice
    return None


class LocalSpeech:
    """On-device speech through pyttsx3."""

    name = "local"

    def __init__(self, engine_factory: Callable[[], Any] = pyttsx3.init) -> None:
        self._engine_factory = engine_factory
        self._default_voice_id: Optional[str] = None

    def voices(self) -> list[LocalVoice]:
        engine = self._engine_factory()
        return [
            LocalVoice(id=v.id, name=v.name or v.id, lang=_voice_lang(v))
            for v in engine.getProperty("voices")
        ]

    def preferred_voice(self) -> Optional[LocalVoice]:
        """A pleasant default when the user hasn't picked one."""
        voices = self.voices()
        for voice in voices:
            if _PREFERRED_VOICE.search(voice.name):
                return voice
        return voices[0] if voices else None

    async def speak(self, text: str, prefs: VoicePreferences) -> None:
        await asyncio.to_thread(self._speak_blocking, text, prefs.local_voice_name)

    def _speak_blocking(self, text: str, voice_name: str) -> None:
        engine = self._engine_factory()
        if self._default_voice_id is None:
            self._default_voice_id = engine.getProperty("voice")
        engine.stop()
        match = match_voice(engine.getProperty("voices"), voice_name)
        engine.setProperty("voice", match.id if match else self._default_voice_id)
        engine.setProperty("volume", 1.0)
        engine.say(text)
        engine.runAndWait()


class VoiceCoordinator:
    """Tries each speech backend in turn; never raises to its caller."""

    def __init__(self, remote: RemoteSpeech, local: LocalSpeech) -> None:
        self.remote = remote
        self.local = local
        self.backends: tuple[SpeechBackend, ...] = (remote, local)

    async def speak(self, text: str, prefs: VoicePreferences) -> Optional[str]:
        """Say ``text``. Returns the backend that handled it, if any."""
        if not prefs.voice_enabled or not text:
            return None
        for backend in self.backends:
            try:
                await backend.speak(text, prefs)
            except Exception as exc:
                log.warning("%s speech failed: %s", backend.name, exc)
                continue
            return backend.name
        log.warning("No speech backend could say the message")
        return None

    @property
    def has_pending(self) -> bool:
        return self.remote.pending is not None

    def play_pending(self) -> bool:
        return self.remote.play_pending()

    def close(self) -> None:
        self.remote.stop_and_release()
