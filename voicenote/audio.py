"""
Segmented microphone recorder.

Captures mono audio from a sounddevice input stream and, while armed with an
on_segment callback, seals the buffered audio into a new segment every
SEGMENT_SECONDS so long recordings can be transcribed piece by piece.
"""

import io
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np
import soundfile as sf

from .errors import DeviceUnavailable, NotRecording, RecorderBusy
from .metrics import log_segment_sealed
from .types import RecordingResult, Segment


# Constants
DEFAULT_BLOCKSIZE = 1024
DEFAULT_SAMPLE_RATE = 16000
SEGMENT_SECONDS = 45.0   # Segment boundary period
TICK_SECONDS = 0.25      # How often the boundary check runs
MIME_TYPE = "audio/wav"

OnSegment = Callable[[Segment, int], None]
StreamFactory = Callable[..., "sd.InputStream"]


def encode_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """Encode float32 samples as 16-bit PCM WAV bytes (empty input gives b"")."""
    if len(audio) == 0:
        return b""
    audio_int16 = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)
    buffer = io.BytesIO()
    sf.write(buffer, audio_int16, sample_rate, format="WAV", subtype="PCM_16")
    buffer.seek(0)
    return buffer.getvalue()


def default_stream_factory(**kwargs) -> "sd.InputStream":
    """Open an input stream on the default microphone."""
    import sounddevice as sd

    # Raises if there is no input device at all
    sd.query_devices(kind="input")
    return sd.InputStream(**kwargs)


@dataclass
class RecordingSession:
    """State owned by the recorder while armed."""
    stream: object
    sample_rate: int
    last_boundary: float
    on_segment: Optional[OnSegment] = None
    buffer: List[np.ndarray] = field(default_factory=list)
    segments: List[Segment] = field(default_factory=list)
    mime_type: str = MIME_TYPE

    @property
    def next_index(self) -> int:
        return len(self.segments)


class SegmentedRecorder:
    """
    Owns the capture device for one recording at a time.

    Thread-safe: the audio callback (sounddevice thread), the tick thread and
    the caller of start/stop/cancel all go through one lock.

    Usage:
        recorder = SegmentedRecorder()
        recorder.start(on_segment=lambda seg, i: print(i))
        # ... user speaks ...
        result = recorder.stop()
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        segment_seconds: float = SEGMENT_SECONDS,
        stream_factory: Optional[StreamFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_seconds: float = TICK_SECONDS,
        metrics=None,
    ):
        self.sample_rate = sample_rate
        self.segment_seconds = segment_seconds
        self.tick_seconds = tick_seconds
        self.stream_factory = stream_factory or default_stream_factory
        self.clock = clock
        self.metrics = metrics

        self.session: Optional[RecordingSession] = None
        self._starting = False   # slot reserved while the device opens
        self._lock = threading.Lock()
        self._ticker: Optional[threading.Thread] = None
        self._ticker_stop = threading.Event()

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self.session is not None

    def start(self, on_segment: Optional[OnSegment] = None) -> None:
        """
        Acquire the microphone and begin capturing.

        Args:
            on_segment: If given, called with (segment, index) at every
                SEGMENT_SECONDS boundary and for the final partial segment.

        Raises:
            DeviceUnavailable: permission denied or no usable input device
            RecorderBusy: a recording is already in progress
        """
        with self._lock:
            if self.session is not None or self._starting:
                raise RecorderBusy("A recording is already in progress")
            self._starting = True

        stream = None
        try:
            stream = self.stream_factory(
                samplerate=self.sample_rate,
                channels=1,
                dtype=np.float32,
                blocksize=DEFAULT_BLOCKSIZE,
                callback=self._audio_callback,
            )
            with self._lock:
                self.session = RecordingSession(
                    stream=stream,
                    sample_rate=self.sample_rate,
                    last_boundary=self.clock(),
                    on_segment=on_segment,
                )
            stream.start()
        except Exception as e:
            with self._lock:
                self.session = None
            self._close_stream(stream)
            print(f"[Recorder] Could not open microphone: {e}")
            raise DeviceUnavailable(
                "Could not access microphone. Please check permissions."
            ) from e
        finally:
            with self._lock:
                self._starting = False

        if on_segment is not None:
            self._ticker_stop.clear()
            self._ticker = threading.Thread(target=self._tick_loop, daemon=True)
            self._ticker.start()

        print(f"[Recorder] Started ({self.sample_rate} Hz, segments every {self.segment_seconds:.0f}s)")

    def stop(self) -> RecordingResult:
        """
        Stop capturing and return everything recorded.

        The remaining buffer becomes the final segment (emitted through
        on_segment when armed and non-empty). Device and buffers are released
        even if sealing fails.

        Raises:
            NotRecording: no active session
        """
        self._disarm()

        with self._lock:
            session = self.session
            self.session = None

        if session is None:
            raise NotRecording("No recording in progress")

        try:
            self._close_stream(session.stream)

            final = self._seal(session)
            if not session.segments:
                # Nothing captured at all; a result always holds one segment
                session.segments.append(self._make_segment(0, np.array([], dtype=np.float32)))

            segments = tuple(session.segments)
            audio = np.concatenate([s.audio for s in segments]).astype(np.float32)
            result = RecordingResult(
                audio=audio,
                segments=segments,
                sample_rate=session.sample_rate,
                mime_type=session.mime_type,
            )
        finally:
            session.buffer.clear()

        print(f"[Recorder] Stopped: {result.duration_seconds:.2f}s in {len(result.segments)} segment(s)")

        if final is not None and session.on_segment is not None:
            session.on_segment(final, final.index)

        return result

    def cancel(self) -> None:
        """Discard the recording and release the device. Safe to call at any time."""
        self._disarm()

        with self._lock:
            session = self.session
            self.session = None

        if session is None:
            return

        self._close_stream(session.stream)
        session.buffer.clear()
        session.segments.clear()
        print("[Recorder] Cancelled")

    def tick(self) -> Optional[Segment]:
        """
        Seal a segment if SEGMENT_SECONDS have elapsed since the last boundary.

        Called periodically by the tick thread; returns the sealed segment,
        or None when no boundary was crossed or the buffer was empty.
        """
        with self._lock:
            session = self.session
            if session is None:
                return None

            now = self.clock()
            if now - session.last_boundary < self.segment_seconds:
                return None

            session.last_boundary = now
            segment = self._seal(session)
            callback = session.on_segment

        if segment is not None and callback is not None:
            # Outside the lock so the callback may call stop()/cancel()
            callback(segment, segment.index)

        return segment

    def _tick_loop(self) -> None:
        """Background boundary check while armed."""
        while not self._ticker_stop.wait(self.tick_seconds):
            try:
                self.tick()
            except Exception as e:
                print(f"[Recorder] Segment callback error: {e}")

    def _disarm(self) -> None:
        """Stop the tick thread (no-op if not running)."""
        self._ticker_stop.set()
        ticker = self._ticker
        self._ticker = None
        if ticker is not None and ticker is not threading.current_thread():
            ticker.join(timeout=2.0)

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """Called by sounddevice for each audio block."""
        if status:
            print(f"[Recorder] Audio callback status: {status}")

        audio = np.asarray(indata, dtype=np.float32).copy().flatten()

        with self._lock:
            if self.session is None:
                return
            self.session.buffer.append(audio)

    def _seal(self, session: RecordingSession) -> Optional[Segment]:
        """
        Flush the buffer into the next segment.

        Must be called with lock held, or after the session was detached.
        Returns None if the buffer is empty.
        """
        if not session.buffer:
            return None

        audio = np.concatenate(session.buffer)
        session.buffer = []
        if len(audio) == 0:
            return None

        segment = self._make_segment(session.next_index, audio)
        session.segments.append(segment)

        print(f"[Recorder] Sealed segment {segment.index} ({segment.duration_seconds:.2f}s)")
        if self.metrics:
            log_segment_sealed(self.metrics, segment.index, segment.duration_seconds * 1000)
        return segment

    def _make_segment(self, index: int, audio: np.ndarray) -> Segment:
        return Segment(
            index=index,
            audio=audio,
            data=encode_wav(audio, self.sample_rate),
            sample_rate=self.sample_rate,
            mime_type=MIME_TYPE,
        )

    @staticmethod
    def _close_stream(stream) -> None:
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            print(f"[Recorder] Error closing stream: {e}")
