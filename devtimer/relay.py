"""HTTP client for the relay that fronts the text and speech APIs.

The relay keeps the API key server-side. Endpoints:

* ``POST /api/ai``  ``{model, prompt}`` -> ``{text}``
* ``POST /api/tts`` ``{text, voice}``   -> ``audio/mpeg`` bytes
* ``GET  /api/health``                  -> ``{ok: true}``

Calls are blocking ``urllib`` requests run on a worker thread so the
countdown keeps ticking while they are in flight.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional

from devtimer.models import RemoteVoice

log = logging.getLogger(__name__)

MAX_PROMPT_CHARS: int = 2000
MAX_SPEECH_CHARS: int = 1000
DEFAULT_MODEL: str = "gpt-4o-mini"


class RelayError(Exception):
    """The relay answered with an error or something unusable."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RelayTransportError(RelayError):
    """The relay could not be reached at all."""


class RelayClient:
    """Thin JSON-over-HTTP client for the relay endpoints."""

    def __init__(self, base_url: str, timeout: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def generate_text(self, prompt: str, model: str = DEFAULT_MODEL) -> str:
        """Ask the relay's text model for a completion."""
        if not prompt:
            raise RelayError("Missing prompt")
        if len(prompt) > MAX_PROMPT_CHARS:
            raise RelayError(f"Prompt too long (max {MAX_PROMPT_CHARS} chars)")
        body = await asyncio.to_thread(
            self._request, "POST", "/api/ai", {"model": model or DEFAULT_MODEL, "prompt": prompt}
        )
        data = _decode_json(body)
        text = data.get("text", "")
        if not isinstance(text, str):
            raise RelayError("Relay returned a non-string text field")
        return text

    async def synthesize(self, text: str, voice: RemoteVoice | str = RemoteVoice.ALLOY) -> bytes:
        """Fetch spoken audio (mp3) for ``text``."""
        if not text:
            raise RelayError("Missing text")
        if len(text) > MAX_SPEECH_CHARS:
            raise RelayError(f"Text too long (max {MAX_SPEECH_CHARS} chars)")
        try:
            voice_id = RemoteVoice(voice).value
        except ValueError:
            raise RelayError(f"Invalid voice parameter: {voice!r}") from None
        audio = await asyncio.to_thread(
            self._request, "POST", "/api/tts", {"text": text, "voice": voice_id}
        )
        if not audio:
            raise RelayError("Relay returned empty audio")
        return audio

    async def health(self) -> bool:
        """True when the relay reports itself healthy."""
        try:
            body = await asyncio.to_thread(self._request, "GET", "/api/health", None)
            return bool(_decode_json(body).get("ok"))
        except RelayError as exc:
            log.warning("Relay health check failed: %s", exc)
            return False

    def _request(self, method: str, path: str, payload: Optional[dict[str, Any]]) -> bytes:
        url = f"{self.base_url}{path}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        try:
            req = urllib.request.Request(url, data=data, method=method)
            if data is not None:
                req.add_header("Content-Type", "application/json")
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            detail = _error_detail(exc)
            log.warning("Relay %s %s returned HTTP %s: %s", method, path, exc.code, detail)
            raise RelayError(f"{path} returned HTTP {exc.code}: {detail}", status=exc.code) from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            raise RelayTransportError(f"{path} unreachable: {exc}") from exc


def _decode_json(body: bytes) -> dict[str, Any]:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RelayError(f"Malformed relay response: {exc}") from exc
    if not isinstance(data, dict):
        raise RelayError("Relay response is not a JSON object")
    return data


def _error_detail(exc: urllib.error.HTTPError) -> str:
    """Best-effort extraction of the relay's ``{error}`` message."""
    try:
        raw = exc.read().decode("utf-8", errors="replace")
    except OSError:
        return "<no text>"
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return raw or "<no text>"
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return raw
