"""
Broadcast cancellation shared by every request of a processing episode.
"""

import threading
from typing import Optional

from .errors import Cancelled


class CancelToken:
    """
    One-shot cancellation signal.

    Thread-safe. Once cancelled it stays cancelled; create a new token
    per processing episode.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout. Returns True if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Operation cancelled")
