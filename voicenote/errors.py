"""
Error taxonomy for VoiceNote.

Recorder and per-segment transcription errors are caught at component
boundaries and turned into notifications by the voice tool. Cancelled is
never shown to the user.
"""

from typing import Optional


class VoiceNoteError(Exception):
    """Base class for all VoiceNote errors."""


class DeviceUnavailable(VoiceNoteError):
    """Microphone permission denied, no input device, or the stream failed to open."""


class RecorderBusy(VoiceNoteError):
    """start() called while a recording session is already armed."""


class NotRecording(VoiceNoteError):
    """stop() called without an active recording session."""


class CredentialsRequired(VoiceNoteError):
    """No API key configured."""

    def __init__(self, message: str = "Please configure your Gemini API key in voice settings."):
        super().__init__(message)


class TranscriptionError(VoiceNoteError):
    """A single transcription request failed."""


class AuthError(TranscriptionError):
    """Missing or rejected API key."""


class ServiceError(TranscriptionError):
    """Non-2xx response, network failure, or unreadable response body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyResultError(TranscriptionError):
    """The response parsed but contained no text."""


class Cancelled(VoiceNoteError):
    """Operation aborted by the user or the host."""


class NoTranscriptionError(VoiceNoteError):
    """Every segment failed or produced empty text."""


class RecordingTooShort(VoiceNoteError):
    """Recording ended before the minimum duration."""

    def __init__(self, elapsed_ms: float, minimum_ms: float = 500):
        super().__init__(
            f"Recording lasted {elapsed_ms:.0f}ms; hold for at least {minimum_ms:.0f}ms."
        )
        self.elapsed_ms = elapsed_ms
        self.minimum_ms = minimum_ms
