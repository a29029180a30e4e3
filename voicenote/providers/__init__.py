"""
Transcription providers.

A provider turns one audio segment into text with a single network call.
Providers are stateless with respect to recordings: credentials and model
are passed on every call so settings changes apply to the next request.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..cancel import CancelToken
from ..types import Segment


class Transcriber(ABC):
    """
    Base class for transcription providers.

    Subclasses must implement:
    - transcribe(): Transcribe one segment to text
    """

    name: str = "base"

    @abstractmethod
    def transcribe(
        self,
        segment: Segment,
        api_key: Optional[str],
        model: str,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Transcribe audio to text.

        Args:
            segment: Encoded audio segment
            api_key: Provider credential
            model: Provider model identifier
            cancel: Shared cancellation token for the processing episode

        Returns:
            The transcribed text, stripped

        Raises:
            AuthError, ServiceError, EmptyResultError, Cancelled
        """

    def shutdown(self) -> None:
        """Free resources (HTTP sessions, worker threads)."""
