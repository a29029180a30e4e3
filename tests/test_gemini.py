"""
Tests for the Gemini transcription provider.

HTTP is mocked at the requests.Session level; responses are real
requests.Response objects so status and JSON handling are exercised.
"""

import base64
import json
import threading
import time
from unittest.mock import Mock

import pytest
import requests


def make_response(status_code: int, body=None, raw: bytes = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if raw is not None:
        response._content = raw
    else:
        response._content = json.dumps(body or {}).encode("utf-8")
    return response


def ok_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestGeminiTranscriber:
    """Tests for GeminiTranscriber."""

    def create_transcriber(self, response=None, side_effect=None):
        from voicenote.providers.gemini import GeminiTranscriber

        session = Mock(spec=requests.Session)
        if side_effect is not None:
            session.post.side_effect = side_effect
        else:
            session.post.return_value = response
        return GeminiTranscriber(session=session, poll_interval=0.01)

    def segment(self, index=0):
        from conftest import make_segment
        return make_segment(index)

    def test_returns_stripped_text(self):
        """Test successful transcription returns trimmed text."""
        transcriber = self.create_transcriber(make_response(200, ok_body("  Hello world \n")))

        assert transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash") == "Hello world"

    def test_request_carries_audio_prompt_and_key(self):
        """Test the request body holds the inline audio and the instruction."""
        from voicenote.providers.gemini import TRANSCRIBE_PROMPT

        transcriber = self.create_transcriber(make_response(200, ok_body("Hi")))
        segment = self.segment()

        transcriber.transcribe(segment, "key-123", "gemini-2.5-pro")

        args, kwargs = transcriber.session.post.call_args
        assert "gemini-2.5-pro:generateContent" in args[0]
        assert kwargs["params"] == {"key": "key-123"}

        parts = kwargs["json"]["contents"][0]["parts"]
        assert parts[0]["inlineData"]["mimeType"] == "audio/wav"
        assert base64.b64decode(parts[0]["inlineData"]["data"]) == segment.data
        assert parts[1]["text"] == TRANSCRIBE_PROMPT
        assert kwargs["json"]["generationConfig"]["temperature"] == 0.1

    def test_missing_key_raises_auth_error(self):
        """Test no request is sent without a key."""
        from voicenote.errors import AuthError

        transcriber = self.create_transcriber(make_response(200, ok_body("Hi")))

        with pytest.raises(AuthError):
            transcriber.transcribe(self.segment(), None, "gemini-2.5-flash")

        transcriber.session.post.assert_not_called()

    @pytest.mark.parametrize("status", [401, 403])
    def test_unauthorized_raises_auth_error(self, status):
        """Test 401/403 map to AuthError."""
        from voicenote.errors import AuthError

        transcriber = self.create_transcriber(
            make_response(status, {"error": {"message": "Permission denied"}})
        )

        with pytest.raises(AuthError, match="Permission denied"):
            transcriber.transcribe(self.segment(), "bad-key", "gemini-2.5-flash")

    def test_invalid_key_400_raises_auth_error(self):
        """Test Gemini's 400 API_KEY_INVALID maps to AuthError."""
        from voicenote.errors import AuthError

        body = {
            "error": {
                "code": 400,
                "message": "API key not valid. Please pass a valid API key.",
                "status": "INVALID_ARGUMENT",
            }
        }
        transcriber = self.create_transcriber(make_response(400, body))

        with pytest.raises(AuthError):
            transcriber.transcribe(self.segment(), "bad-key", "gemini-2.5-flash")

    def test_server_error_raises_service_error_with_message(self):
        """Test 5xx with an error body keeps the service's message and status."""
        from voicenote.errors import ServiceError

        transcriber = self.create_transcriber(
            make_response(500, {"error": {"message": "Internal error"}})
        )

        with pytest.raises(ServiceError) as exc_info:
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash")

        assert str(exc_info.value) == "Internal error"
        assert exc_info.value.status_code == 500

    def test_error_without_body_uses_status_message(self):
        """Test a bare error status still produces a readable message."""
        from voicenote.errors import ServiceError

        transcriber = self.create_transcriber(make_response(503, raw=b"Service Unavailable"))

        with pytest.raises(ServiceError, match="API request failed with status 503"):
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash")

    def test_invalid_json_raises_service_error(self):
        """Test an unparseable 200 body is a service error."""
        from voicenote.errors import ServiceError

        transcriber = self.create_transcriber(make_response(200, raw=b"<html>oops</html>"))

        with pytest.raises(ServiceError, match="Invalid response"):
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash")

    @pytest.mark.parametrize("body", [
        {},
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        ok_body("   "),
    ])
    def test_missing_text_raises_empty_result(self, body):
        """Test responses without usable text raise EmptyResultError."""
        from voicenote.errors import EmptyResultError

        transcriber = self.create_transcriber(make_response(200, body))

        with pytest.raises(EmptyResultError):
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash")

    def test_network_error_raises_service_error(self):
        """Test connection failures become ServiceError."""
        from voicenote.errors import ServiceError

        transcriber = self.create_transcriber(
            side_effect=requests.ConnectionError("connection refused")
        )

        with pytest.raises(ServiceError, match="Network error"):
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash")

    def test_cancelled_before_send(self):
        """Test a fired token stops the request from being sent."""
        from voicenote.cancel import CancelToken
        from voicenote.errors import Cancelled

        transcriber = self.create_transcriber(make_response(200, ok_body("Hi")))
        token = CancelToken()
        token.cancel()

        with pytest.raises(Cancelled):
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash", token)

        transcriber.session.post.assert_not_called()

    def test_cancel_while_waiting_returns_promptly(self):
        """Test cancelling mid-request raises Cancelled without waiting for HTTP."""
        from voicenote.cancel import CancelToken
        from voicenote.errors import Cancelled

        release = threading.Event()

        def slow_post(*args, **kwargs):
            release.wait(5.0)
            return make_response(200, ok_body("too late"))

        transcriber = self.create_transcriber(side_effect=slow_post)
        token = CancelToken()
        threading.Timer(0.1, token.cancel).start()

        start = time.time()
        try:
            with pytest.raises(Cancelled):
                transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash", token)
            assert time.time() - start < 2.0
        finally:
            release.set()

    def test_cancelled_requests_do_not_delay_next_request(self):
        """Test a new request is not queued behind abandoned cancelled ones."""
        from voicenote.cancel import CancelToken
        from voicenote.errors import Cancelled

        release = threading.Event()

        def post(*args, **kwargs):
            if kwargs["params"]["key"] == "slow-key":
                release.wait(5.0)
            return make_response(200, ok_body("fresh"))

        transcriber = self.create_transcriber(side_effect=post)
        try:
            for _ in range(20):
                token = CancelToken()
                threading.Timer(0.02, token.cancel).start()
                with pytest.raises(Cancelled):
                    transcriber.transcribe(self.segment(), "slow-key", "gemini-2.5-flash", token)

            start = time.time()
            text = transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash", CancelToken())

            assert text == "fresh"
            assert time.time() - start < 1.0
        finally:
            release.set()

    def test_response_after_cancel_is_discarded(self):
        """Test a response that arrives after cancellation is not returned."""
        from voicenote.cancel import CancelToken
        from voicenote.errors import Cancelled

        token = CancelToken()

        def post(*args, **kwargs):
            token.cancel()
            return make_response(200, ok_body("discard me"))

        transcriber = self.create_transcriber(side_effect=post)

        with pytest.raises(Cancelled):
            transcriber.transcribe(self.segment(), "key-123", "gemini-2.5-flash", token)

    def test_shutdown_closes_session(self):
        """Test shutdown closes the HTTP session."""
        transcriber = self.create_transcriber(make_response(200, ok_body("Hi")))

        transcriber.shutdown()

        transcriber.session.close.assert_called_once()
