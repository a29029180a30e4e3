"""
Gemini key check for the settings dialog.

A GET on the models endpoint is the cheapest authenticated request the API
offers; when a model is given it also confirms that model is available to
the key.
"""

import time
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from .providers.gemini import MODELS_URL


MIN_KEY_LENGTH = 10


@dataclass
class ValidationResult:
    """Result of an API key validation test."""
    valid: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None


# Shared session for connection reuse
_session = requests.Session()


def validate_gemini_key(api_key: str, model: Optional[str] = None) -> ValidationResult:
    """
    Check a Gemini API key (and optionally a model id) against the API.

    Returns:
        ValidationResult with latency on success, a short error otherwise
    """
    if not api_key or len(api_key) < MIN_KEY_LENGTH:
        return ValidationResult(valid=False, error="Key too short")

    url = f"{MODELS_URL}/{model}" if model else MODELS_URL
    start = time.perf_counter()
    try:
        response = _session.get(url, params={"key": api_key}, timeout=10)
    except requests.Timeout:
        return ValidationResult(valid=False, error="Timeout")
    except requests.RequestException as e:
        return ValidationResult(valid=False, error=str(e)[:50])
    latency = int((time.perf_counter() - start) * 1000)

    status = response.status_code
    if status == 200:
        return ValidationResult(valid=True, latency_ms=latency)
    if status in (400, 401, 403):
        return ValidationResult(valid=False, error="Invalid key")
    if status == 404 and model:
        return ValidationResult(valid=False, error=f"Model {model} not available")
    return ValidationResult(valid=False, error=f"HTTP {status}")


class KeyValidator:
    """
    Runs validate_gemini_key off the UI thread.

    Only the most recent request reports back; earlier ones still in flight
    are dropped when they finish.

    Usage:
        validator = KeyValidator()
        validator.validate(key, on_result=lambda r: update_ui(r), model="gemini-2.5-flash")
    """

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._pending: Optional[Future] = None

    def validate(
        self,
        api_key: str,
        on_result: Callable[[ValidationResult], None],
        model: Optional[str] = None,
    ) -> None:
        self._cancel_pending()
        if not api_key:
            on_result(ValidationResult(valid=False, error="No key"))
            return
        future = self._executor.submit(validate_gemini_key, api_key, model)
        self._pending = future
        future.add_done_callback(lambda f: self._handle_result(f, on_result))

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _handle_result(self, future: Future, on_result: Callable[[ValidationResult], None]) -> None:
        if self._pending is not future or future.cancelled():
            return
        self._pending = None

        try:
            result = future.result()
        except Exception as e:
            result = ValidationResult(valid=False, error=str(e)[:50])
        on_result(result)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
