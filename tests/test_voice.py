"""Tests for the voice coordinator and its speech backends."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from devtimer.models import RemoteVoice, VoicePreferences
from devtimer.relay import RelayClient, RelayError, RelayTransportError
from devtimer.voice import (
    AudioClip,
    LocalSpeech,
    PlaybackBlocked,
    PlaybackError,
    RemoteSpeech,
    VoiceCoordinator,
    match_voice,
)

PLAYER = ["mpg123", "-q"]


class FakeLocal:
    name = "local"

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.spoken: list[str] = []

    async def speak(self, text: str, prefs: VoicePreferences) -> None:
        self.spoken.append(text)
        if self.error is not None:
            raise self.error


def _process(running: bool = True) -> MagicMock:
    proc = MagicMock()
    proc.poll.return_value = None if running else 0
    return proc


@pytest.fixture()
def relay() -> RelayClient:
    client = RelayClient("http://relay.test")
    client.synthesize = AsyncMock(return_value=b"ID3-fake-mp3")
    return client


def _coordinator(relay, local=None, **remote_kwargs) -> tuple[VoiceCoordinator, FakeLocal]:
    local = local or FakeLocal()
    coordinator = VoiceCoordinator(RemoteSpeech(relay, **remote_kwargs), local)
    return coordinator, local


class TestCoordinator:
    def test_disabled_voice_does_nothing(self, relay) -> None:
        coordinator, local = _coordinator(relay)
        with patch("devtimer.voice.subprocess.Popen") as popen:
            result = asyncio.run(
                coordinator.speak("Well done.", VoicePreferences(voice_enabled=False))
            )
        assert result is None
        relay.synthesize.assert_not_called()
        popen.assert_not_called()
        assert local.spoken == []

    def test_empty_text_does_nothing(self, relay) -> None:
        coordinator, local = _coordinator(relay)
        assert asyncio.run(coordinator.speak("", VoicePreferences())) is None
        relay.synthesize.assert_not_called()
        assert local.spoken == []

    @patch("devtimer.voice.find_player", return_value=PLAYER)
    @patch("devtimer.voice.subprocess.Popen")
    def test_remote_plays_audio(self, mock_popen, _player, relay) -> None:
        mock_popen.return_value = _process()
        coordinator, local = _coordinator(relay)
        prefs = VoicePreferences(remote_voice=RemoteVoice.ONYX)
        result = asyncio.run(coordinator.speak("Well done.", prefs))
        try:
            assert result == "remote"
            relay.synthesize.assert_awaited_once_with("Well done.", RemoteVoice.ONYX)
            clip = coordinator.remote.current
            assert clip is not None and clip.path.read_bytes() == b"ID3-fake-mp3"
            assert mock_popen.call_args.args[0] == [*PLAYER, str(clip.path)]
            assert local.spoken == []
        finally:
            coordinator.close()

    def test_transport_failure_falls_back_to_local(self, relay) -> None:
        relay.synthesize.side_effect = RelayTransportError("unreachable")
        coordinator, local = _coordinator(relay)
        result = asyncio.run(coordinator.speak("Break time.", VoicePreferences()))
        assert result == "local"
        assert local.spoken == ["Break time."]

    def test_http_error_falls_back_to_local(self, relay) -> None:
        relay.synthesize.side_effect = RelayError("TTS 500", status=500)
        coordinator, local = _coordinator(relay)
        assert asyncio.run(coordinator.speak("Break time.", VoicePreferences())) == "local"

    def test_everything_failing_is_swallowed(self, relay) -> None:
        relay.synthesize.side_effect = RelayTransportError("unreachable")
        coordinator, local = _coordinator(relay, FakeLocal(error=RuntimeError("no driver")))
        assert asyncio.run(coordinator.speak("Hello", VoicePreferences())) is None
        assert local.spoken == ["Hello"]


class TestAudioOwnership:
    @patch("devtimer.voice.find_player", return_value=PLAYER)
    @patch("devtimer.voice.subprocess.Popen")
    def test_previous_clip_released(self, mock_popen, _player, relay) -> None:
        first_proc, second_proc = _process(), _process()
        mock_popen.side_effect = [first_proc, second_proc]
        coordinator, _ = _coordinator(relay)

        asyncio.run(coordinator.speak("one", VoicePreferences()))
        first = coordinator.remote.current
        asyncio.run(coordinator.speak("two", VoicePreferences()))
        second = coordinator.remote.current
        try:
            assert first is not second
            assert first.released
            assert not first.path.exists()
            first_proc.terminate.assert_called_once()
            assert second.path.exists()
        finally:
            coordinator.close()
        assert second.released

    def test_stop_and_release_twice(self, tmp_path) -> None:
        path = tmp_path / "clip.mp3"
        path.write_bytes(b"x")
        clip = AudioClip(path)
        clip.stop_and_release()
        clip.stop_and_release()
        assert clip.released
        assert not path.exists()

    def test_released_clip_cannot_play(self, tmp_path) -> None:
        clip = AudioClip(tmp_path / "clip.mp3")
        clip.stop_and_release()
        with pytest.raises(PlaybackError):
            clip.play()

    @patch("devtimer.voice.find_player", return_value=None)
    def test_no_player_is_blocked(self, _player, tmp_path) -> None:
        clip = AudioClip.from_bytes(b"x")
        try:
            with pytest.raises(PlaybackBlocked):
                clip.play()
        finally:
            clip.stop_and_release()


class TestTapToPlay:
    @patch("devtimer.voice.find_player", return_value=None)
    def test_blocked_offers_tap_to_play(self, _player, relay) -> None:
        offered: list[AudioClip] = []
        coordinator, local = _coordinator(relay, on_blocked=offered.append)
        result = asyncio.run(coordinator.speak("Listen up", VoicePreferences()))
        try:
            assert result == "remote"
            assert local.spoken == []  # blocked playback is not a transport failure
            assert coordinator.has_pending
            assert offered == [coordinator.remote.pending]
        finally:
            coordinator.close()

    @patch("devtimer.voice.subprocess.Popen")
    def test_autoplay_disabled_waits_for_tap(self, mock_popen, relay) -> None:
        coordinator, _ = _coordinator(relay, autoplay=False)
        asyncio.run(coordinator.speak("Listen up", VoicePreferences()))
        try:
            mock_popen.assert_not_called()
            assert coordinator.has_pending
            with patch("devtimer.voice.find_player", return_value=PLAYER):
                assert coordinator.play_pending()
            mock_popen.assert_called_once()
            assert not coordinator.has_pending
            assert not coordinator.play_pending()
        finally:
            coordinator.close()

    def test_nothing_pending(self, relay) -> None:
        coordinator, _ = _coordinator(relay)
        assert not coordinator.play_pending()


def _fake_engine(voices: list[SimpleNamespace]) -> MagicMock:
    engine = MagicMock()
    props = {"voices": voices, "voice": "default-id"}
    engine.getProperty.side_effect = props.__getitem__
    return engine


VOICES = [
    SimpleNamespace(id="v-david", name="David", languages=["en_US"]),
    SimpleNamespace(id="v-sam", name="Samantha", languages=[b"\x05en_US"]),
]


class TestLocalSpeech:
    def test_matches_voice_case_insensitively(self) -> None:
        engine = _fake_engine(VOICES)
        speech = LocalSpeech(engine_factory=lambda: engine)
        asyncio.run(speech.speak("Hi there", VoicePreferences(local_voice_name="samantha")))
        engine.setProperty.assert_any_call("voice", "v-sam")
        engine.setProperty.assert_any_call("volume", 1.0)
        engine.say.assert_called_once_with("Hi there")
        engine.runAndWait.assert_called_once()

    def test_cancels_before_speaking(self) -> None:
        engine = _fake_engine(VOICES)
        speech = LocalSpeech(engine_factory=lambda: engine)
        asyncio.run(speech.speak("Hi", VoicePreferences()))
        names = [c[0] for c in engine.method_calls]
        assert names.index("stop") < names.index("say")

    def test_unknown_voice_uses_default(self) -> None:
        engine = _fake_engine(VOICES)
        speech = LocalSpeech(engine_factory=lambda: engine)
        asyncio.run(speech.speak("Hi", VoicePreferences(local_voice_name="Nobody")))
        engine.setProperty.assert_any_call("voice", "default-id")

    def test_lists_voices(self) -> None:
        speech = LocalSpeech(engine_factory=lambda: _fake_engine(VOICES))
        voices = speech.voices()
        assert [v.name for v in voices] == ["David", "Samantha"]
        assert voices[1].lang == "en_US"

    def test_preferred_voice(self) -> None:
        speech = LocalSpeech(engine_factory=lambda: _fake_engine(VOICES))
        assert speech.preferred_voice().name == "Samantha"

    def test_preferred_voice_first_when_no_match(self) -> None:
        speech = LocalSpeech(engine_factory=lambda: _fake_engine(VOICES[:1]))
        assert speech.preferred_voice().name == "David"

    def test_match_voice_blank(self) -> None:
        assert match_voice(VOICES, "") is None
