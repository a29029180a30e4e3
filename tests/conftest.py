"""
Shared fakes for VoiceNote tests.

No real microphones or network: recorders get a FakeStream factory and a
FakeClock, the orchestrator and tool get a FakeTranscriber.
"""

import threading
import time
from typing import Dict, List, Optional, Union

import numpy as np
import pytest

from voicenote.audio import encode_wav
from voicenote.errors import Cancelled
from voicenote.host import Host
from voicenote.providers import Transcriber
from voicenote.types import ConfigSnapshot, Position, RecordingResult, Segment


SAMPLE_RATE = 1000


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStream:
    """Stands in for sounddevice.InputStream."""

    def __init__(self, start_error: Optional[Exception] = None, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs.get("callback")
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def feed(self, seconds: float, sample_rate: int = SAMPLE_RATE, value: float = 0.1) -> None:
        frames = int(seconds * sample_rate)
        self.callback(np.full((frames, 1), value, dtype=np.float32), frames, None, None)


class StreamFactory:
    """Records every stream it opens."""

    def __init__(self, error: Optional[Exception] = None, start_error: Optional[Exception] = None):
        self.error = error
        self.start_error = start_error
        self.streams: List[FakeStream] = []

    def __call__(self, **kwargs) -> FakeStream:
        if self.error:
            raise self.error
        stream = FakeStream(start_error=self.start_error, **kwargs)
        self.streams.append(stream)
        return stream

    @property
    def last(self) -> FakeStream:
        return self.streams[-1]


class FakeHost(Host):
    """Records every host callback."""

    def __init__(self, anchor: Position = Position(100, 50)):
        self.anchor = anchor
        self.artifacts: List[tuple] = []
        self.notifications: List[tuple] = []
        self.affordances: List[str] = []
        self.settings_opened = 0

    def get_anchor(self) -> Position:
        return self.anchor

    def create_artifact(self, text: str, position: Position) -> None:
        self.artifacts.append((text, position))

    def set_affordance(self, state: str) -> None:
        self.affordances.append(state)

    def notify(self, severity: str, title: str, description: str) -> None:
        self.notifications.append((severity, title, description))

    def open_settings(self) -> None:
        self.settings_opened += 1

    def severities(self) -> List[str]:
        return [n[0] for n in self.notifications]


Response = Union[str, Exception]


class FakeTranscriber(Transcriber):
    """
    Scripted transcriber.

    responses: per segment index, text to return or exception to raise.
    delays: per segment index, seconds to sleep first (reorders completion).
    block_until_cancel: indices that wait for the CancelToken, then raise Cancelled.
    """

    name = "fake"

    def __init__(
        self,
        responses: Optional[Dict[int, Response]] = None,
        default: Response = "Hello world",
        delays: Optional[Dict[int, float]] = None,
        block_until_cancel: Optional[set] = None,
        barrier: Optional[threading.Barrier] = None,
    ):
        self.responses = responses or {}
        self.default = default
        self.delays = delays or {}
        self.block_until_cancel = block_until_cancel or set()
        self.barrier = barrier

        self.calls: List[tuple] = []
        self.completed: List[int] = []
        self.cancelled_calls = 0
        self.in_flight = threading.Event()
        self._lock = threading.Lock()

    def transcribe(self, segment: Segment, api_key, model, cancel=None) -> str:
        with self._lock:
            self.calls.append((segment.index, api_key, model))
        self.in_flight.set()

        if self.barrier is not None:
            self.barrier.wait()

        if segment.index in self.block_until_cancel:
            cancel.wait(5.0)
            with self._lock:
                self.cancelled_calls += 1
            raise Cancelled("Transcription cancelled")

        delay = self.delays.get(segment.index, 0.0)
        if delay:
            time.sleep(delay)

        response = self.responses.get(segment.index, self.default)
        with self._lock:
            self.completed.append(segment.index)
        if isinstance(response, Exception):
            raise response
        return response


class FakeRecorder:
    """Stands in for SegmentedRecorder inside the voice tool."""

    sample_rate = SAMPLE_RATE

    def __init__(self, result: Optional[RecordingResult] = None, start_error: Optional[Exception] = None):
        self.result = result or make_recording(1)
        self.start_error = start_error
        self.on_segment = None
        self.start_calls = 0
        self.stop_calls = 0
        self.cancel_calls = 0

    def start(self, on_segment=None):
        self.start_calls += 1
        self.on_segment = on_segment
        if self.start_error:
            raise self.start_error

    def stop(self) -> RecordingResult:
        self.stop_calls += 1
        return self.result

    def cancel(self) -> None:
        self.cancel_calls += 1


def make_segment(index: int, seconds: float = 1.0, sample_rate: int = SAMPLE_RATE) -> Segment:
    audio = np.full(int(seconds * sample_rate), 0.1 * (index + 1), dtype=np.float32)
    return Segment(index=index, audio=audio, data=encode_wav(audio, sample_rate), sample_rate=sample_rate)


def make_recording(n_segments: int, seconds_each: float = 1.0) -> RecordingResult:
    segments = tuple(make_segment(i, seconds_each) for i in range(n_segments))
    audio = np.concatenate([s.audio for s in segments])
    return RecordingResult(
        audio=audio,
        segments=segments,
        sample_rate=SAMPLE_RATE,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stream_factory():
    return StreamFactory()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def snapshot():
    return ConfigSnapshot(api_key="test-api-key", model="gemini-2.5-flash", merge_policy="individual")
