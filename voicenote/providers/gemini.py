"""
Google Gemini API provider for cloud transcription.
"""

import base64
import threading
import time
from typing import Optional

import requests

from . import Transcriber
from ..cancel import CancelToken
from ..errors import AuthError, Cancelled, EmptyResultError, ServiceError
from ..types import Segment


GEMINI_MODELS = [
    {
        "id": "gemini-2.5-flash",
        "name": "Gemini 2.5 Flash (Recommended)",
        "description": "Fast, stable, good quality",
    },
    {
        "id": "gemini-2.5-flash-lite",
        "name": "Gemini 2.5 Flash Lite",
        "description": "Fastest, lowest cost",
    },
    {
        "id": "gemini-2.5-pro",
        "name": "Gemini 2.5 Pro",
        "description": "Highest quality, slower",
    },
    {
        "id": "gemini-2.0-flash",
        "name": "Gemini 2.0 Flash",
        "description": "Legacy stable",
    },
]

DEFAULT_MODEL = "gemini-2.5-flash"

MODELS_URL = "https://generativelanguage.googleapis.com/v1beta/models"
API_URL = MODELS_URL + "/{model}:generateContent"
TRANSCRIBE_PROMPT = "Transcribe this audio accurately. Return only the transcription text, nothing else."


def _error_message(response: requests.Response) -> Optional[str]:
    """Pull error.message out of a JSON error body, if any."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return None


def _is_invalid_key(response: requests.Response, message: Optional[str]) -> bool:
    """Gemini reports a bad key as HTTP 400 with reason API_KEY_INVALID."""
    if response.status_code in (401, 403):
        return True
    if response.status_code != 400:
        return False
    if message and "api key" in message.lower():
        return True
    return "API_KEY_INVALID" in response.text


def _extract_text(data) -> str:
    """Return candidates[0].content.parts[0].text, or "" if absent."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return text if isinstance(text, str) else ""


class _PendingRequest:
    """One blocking HTTP call running on its own daemon thread."""

    def __init__(self, send, *args, **kwargs):
        self.done = threading.Event()
        self.response: Optional[requests.Response] = None
        self.error: Optional[BaseException] = None
        self._thread = threading.Thread(
            target=self._run, args=(send, args, kwargs), daemon=True
        )
        self._thread.start()

    def _run(self, send, args, kwargs) -> None:
        try:
            self.response = send(*args, **kwargs)
        except Exception as e:
            self.error = e
        finally:
            self.done.set()


class GeminiTranscriber(Transcriber):
    """
    Cloud transcription using Google Gemini's generateContent endpoint.

    The audio is sent inline (base64) with a fixed verbatim-transcription
    instruction. Each HTTP call runs on its own helper thread so a shared
    CancelToken can abort the wait promptly; a cancelled call never holds
    up the next one.
    """

    name = "gemini"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        poll_interval: float = 0.05,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.poll_interval = poll_interval

    def build_request(self, segment: Segment, model: str) -> dict:
        """Build the generateContent JSON body for one segment."""
        base64_audio = base64.b64encode(segment.data).decode("utf-8")
        return {
            "contents": [
                {
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": segment.mime_type or "audio/wav",
                                "data": base64_audio,
                            },
                        },
                        {"text": TRANSCRIBE_PROMPT},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 8192,
            },
        }

    def transcribe(
        self,
        segment: Segment,
        api_key: Optional[str],
        model: str,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Transcribe one segment using Gemini.

        Args:
            segment: Encoded audio segment
            api_key: Gemini API key
            model: Gemini model id, e.g. "gemini-2.5-flash"
            cancel: Shared cancellation token

        Returns:
            Transcribed text, stripped
        """
        if not api_key:
            raise AuthError("No Gemini API key configured")

        if cancel:
            cancel.raise_if_cancelled()

        start = time.time()
        body = self.build_request(segment, model)
        request = _PendingRequest(
            self.session.post,
            API_URL.format(model=model),
            params={"key": api_key},
            headers={"Content-Type": "application/json"},
            json=body,
            timeout=self.timeout,
        )

        while not request.done.wait(self.poll_interval):
            if cancel and cancel.cancelled:
                # The abandoned POST finishes on its own thread
                raise Cancelled("Transcription cancelled")

        if request.error is not None:
            if cancel and cancel.cancelled:
                raise Cancelled("Transcription cancelled") from request.error
            if isinstance(request.error, requests.RequestException):
                raise ServiceError(f"Network error: {request.error}") from request.error
            raise request.error
        response = request.response

        # A response that lands after cancellation is discarded
        if cancel:
            cancel.raise_if_cancelled()

        latency_ms = int((time.time() - start) * 1000)

        if not response.ok:
            message = _error_message(response)
            print(f"[{self.name}] HTTP {response.status_code} after {latency_ms}ms: {message}")
            if _is_invalid_key(response, message):
                raise AuthError(message or "Invalid Gemini API key")
            raise ServiceError(
                message or f"API request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ServiceError(
                "Invalid response from transcription service",
                status_code=response.status_code,
            ) from e

        text = _extract_text(data).strip()
        if not text:
            raise EmptyResultError("No transcription returned from API")

        print(f"[{self.name}] Segment {segment.index}: {latency_ms / 1000:.2f}s, {len(text.split())} words")
        return text

    def shutdown(self) -> None:
        """Close the HTTP session."""
        self.session.close()
        print(f"[{self.name}] Shutdown")
