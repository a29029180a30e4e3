"""
Voice tool state machine.

Three states: idle -> recording -> processing -> idle. The transition table
is a pure function, transition(state, event) -> (state, effects); VoiceTool
feeds it events from the host, the recorder and the processing worker, and
carries out the resulting effects.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Literal, Optional, Tuple

from .audio import SegmentedRecorder
from .cancel import CancelToken
from .errors import (
    Cancelled, CredentialsRequired, NoTranscriptionError, RecordingTooShort,
    VoiceNoteError,
)
from .host import Host
from .metrics import MetricsWriter, log_recording_started, log_session_complete
from .orchestrator import TranscriptionOrchestrator
from .types import ConfigSnapshot, OutputPayload, Segment, TranscriptionOutcome


ToolState = Literal["idle", "recording", "processing"]

MIN_RECORDING_MS = 500
PREVIEW_CHARS = 50


@dataclass(frozen=True)
class Event:
    """
    Something that happened to the tool.

    kind: "start" | "stop" | "complete" | "cancel" | "interrupt" | "segment"
          | "recorder_failed" | "finished" | "failed"
    """
    kind: str
    has_credentials: bool = False
    elapsed_ms: float = 0.0
    outcome: Optional[TranscriptionOutcome] = None
    error: Optional[BaseException] = None
    episode: Optional[CancelToken] = None   # set on worker results
    index: Optional[int] = None   # segment events


@dataclass(frozen=True)
class Effect:
    """
    Something the driver must do after a transition.

    kind: "set_affordance" | "open_settings" | "start_recorder"
          | "cancel_recorder" | "begin_processing" | "abort_transcription"
          | "emit_artifacts" | "notify"
    """
    kind: str
    value: Any = None
    severity: str = ""
    title: str = ""
    description: str = ""
    payloads: Tuple[OutputPayload, ...] = ()
    error: Optional[BaseException] = None


def _affordance(state: ToolState) -> Effect:
    return Effect("set_affordance", value=state)


def _notify(severity: str, title: str, description: str, error: Optional[BaseException] = None) -> Effect:
    return Effect("notify", severity=severity, title=title, description=description, error=error)


def _success_notice(outcome: TranscriptionOutcome) -> Effect:
    if outcome.segment_count <= 1:
        description = outcome.preview(PREVIEW_CHARS)
    elif outcome.merge_policy == "merged":
        description = f"Merged {outcome.success_count} segments into one note."
    else:
        description = f"Created {outcome.success_count} notes."
    return _notify("success", "Transcription complete", description)


def _failure_notice(error: Optional[BaseException]) -> List[Effect]:
    if isinstance(error, Cancelled):
        return []
    if isinstance(error, NoTranscriptionError):
        return [_notify("warning", "No transcription", str(error), error)]
    if isinstance(error, CredentialsRequired):
        return [_notify("error", "API key required", str(error), error)]
    message = str(error) if error is not None and str(error) else "Unknown error"
    return [_notify("error", "Transcription failed", message, error)]


def transition(state: ToolState, event: Event) -> Tuple[ToolState, List[Effect]]:
    """
    Pure transition table.

    Pairs not listed leave the state unchanged with no effects (e.g. a
    late worker result after the user already cancelled).
    """
    kind = event.kind

    if state == "idle":
        if kind == "start":
            if not event.has_credentials:
                return "idle", [Effect("open_settings", error=CredentialsRequired())]
            return "recording", [_affordance("recording"), Effect("start_recorder")]
        return "idle", []

    if state == "recording":
        if kind == "segment":
            return "recording", []
        if kind == "recorder_failed":
            return "idle", [
                _notify(
                    "error",
                    "Recording failed",
                    "Could not access microphone. Please check permissions.",
                    event.error,
                ),
                _affordance("idle"),
            ]
        if kind in ("stop", "complete"):
            if event.elapsed_ms < MIN_RECORDING_MS:
                error = RecordingTooShort(event.elapsed_ms, MIN_RECORDING_MS)
                return "idle", [
                    Effect("cancel_recorder"),
                    _notify("warning", "Recording too short", str(error), error),
                    _affordance("idle"),
                ]
            return "processing", [_affordance("processing"), Effect("begin_processing")]
        if kind in ("cancel", "interrupt"):
            return "idle", [Effect("cancel_recorder"), _affordance("idle")]
        return "recording", []

    if state == "processing":
        if kind == "finished" and event.outcome is not None:
            return "idle", [
                Effect("emit_artifacts", payloads=tuple(event.outcome.payloads), value=event.outcome),
                _success_notice(event.outcome),
                _affordance("idle"),
            ]
        if kind == "failed":
            return "idle", _failure_notice(event.error) + [_affordance("idle")]
        if kind in ("cancel", "interrupt"):
            return "idle", [Effect("abort_transcription"), _affordance("idle")]
        return "processing", []

    return state, []


@dataclass
class ToolSession:
    """Working memory for one recording attempt. Dropped on return to idle."""
    recorder: Optional[SegmentedRecorder] = None
    started_at: Optional[float] = None
    cancel: Optional[CancelToken] = None
    segments_seen: int = 0


class VoiceTool:
    """
    Sequences recorder, orchestrator and host through the state machine.

    All transitions are serialized: events go through one queue under a
    re-entrant lock, so events raised while applying effects (e.g. the
    microphone failing to open) are handled after the current one.

    Usage:
        tool = VoiceTool(host, config.snapshot, TranscriptionOrchestrator(GeminiTranscriber()))
        tool.start()    # idle -> recording
        tool.stop()     # recording -> processing -> idle
    """

    def __init__(
        self,
        host: Host,
        config_snapshot_fn: Callable[[], ConfigSnapshot],
        orchestrator: TranscriptionOrchestrator,
        recorder_factory: Callable[[], SegmentedRecorder] = SegmentedRecorder,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsWriter] = None,
    ):
        self.host = host
        self.config_snapshot_fn = config_snapshot_fn
        self.orchestrator = orchestrator
        self.recorder_factory = recorder_factory
        self.clock = clock
        self.metrics = metrics

        self.state: ToolState = "idle"
        self.session: Optional[ToolSession] = None
        self.last_error: Optional[BaseException] = None
        self.last_outcome: Optional[TranscriptionOutcome] = None

        self._lock = threading.RLock()
        self._queue: Deque[Event] = deque()
        self._draining = False
        self._worker: Optional[threading.Thread] = None

    # ---- Host-facing signals ----

    def start(self) -> None:
        """User asked to start recording."""
        snapshot = self.config_snapshot_fn()
        self.dispatch(Event("start", has_credentials=snapshot.has_credentials))

    def stop(self) -> None:
        """User asked to stop recording and transcribe."""
        self._finish_recording("stop")

    def complete(self) -> None:
        """Host/system says the recording is complete (e.g. safety timeout)."""
        self._finish_recording("complete")

    def cancel(self) -> None:
        """User aborted; nothing is transcribed or emitted."""
        self.dispatch(Event("cancel"))

    def interrupt(self) -> None:
        """Host switched away from the tool."""
        self.dispatch(Event("interrupt"))

    def is_busy(self) -> bool:
        with self._lock:
            return self.state != "idle"

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the current processing worker, if any."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)

    # ---- Event loop ----

    def dispatch(self, event: Event, block: bool = True) -> None:
        """
        Queue an event and drain the queue unless already draining.

        With block=False (recorder threads) the event is left for whichever
        thread currently holds the lock to drain.
        """
        self._queue.append(event)
        while self._queue:
            if not self._lock.acquire(blocking=block):
                return
            try:
                if self._draining:
                    return
                self._draining = True
                try:
                    while self._queue:
                        self._step(self._queue.popleft())
                finally:
                    self._draining = False
            finally:
                self._lock.release()

    def _step(self, event: Event) -> None:
        if event.episode is not None and self._is_stale(event.episode):
            print(f"[VoiceTool] Dropping stale {event.kind} result")
            return

        previous = self.state
        new_state, effects = transition(previous, event)
        self.state = new_state

        if new_state != previous:
            print(f"[VoiceTool] {previous} -> {new_state} ({event.kind})")
        if previous == "idle" and new_state == "recording":
            self.session = ToolSession()
            self.last_error = None
            self.last_outcome = None
        if event.kind == "segment" and new_state == "recording" and self.session is not None:
            self.session.segments_seen += 1

        try:
            for effect in effects:
                try:
                    self._apply(effect)
                except Exception as e:
                    print(f"[VoiceTool] Effect {effect.kind} failed: {e!r}")
                    self.last_error = e
        finally:
            if new_state == "idle":
                self.session = None

    def _is_stale(self, episode: CancelToken) -> bool:
        return (
            episode.cancelled
            or self.session is None
            or self.session.cancel is not episode
        )

    def _apply(self, effect: Effect) -> None:
        kind = effect.kind
        session = self.session

        if kind == "set_affordance":
            self.host.set_affordance(effect.value)

        elif kind == "open_settings":
            self.last_error = effect.error
            print("[VoiceTool] No API key configured; opening settings")
            self.host.open_settings()

        elif kind == "start_recorder":
            self._start_recorder(session)

        elif kind == "cancel_recorder":
            if session and session.recorder:
                session.recorder.cancel()

        elif kind == "begin_processing":
            self._begin_processing(session)

        elif kind == "abort_transcription":
            if session and session.cancel:
                session.cancel.cancel()
            print("[VoiceTool] Transcription aborted")

        elif kind == "emit_artifacts":
            for payload in effect.payloads:
                self.host.create_artifact(payload.text, payload.position)
            self.last_outcome = effect.value

        elif kind == "notify":
            if effect.error is not None:
                self.last_error = effect.error
            self.host.notify(effect.severity, effect.title, effect.description)

        else:
            raise ValueError(f"Unknown effect: {kind}")

    # ---- Effects ----

    def _start_recorder(self, session: Optional[ToolSession]) -> None:
        if session is None:
            return
        recorder = self.recorder_factory()
        session.recorder = recorder
        try:
            recorder.start(on_segment=self._on_segment)
        except Exception as e:
            print(f"[VoiceTool] Failed to start recording: {e}")
            self.dispatch(Event("recorder_failed", error=e))
            return

        session.started_at = self.clock()
        if self.metrics:
            log_recording_started(self.metrics, recorder.sample_rate)

    def _on_segment(self, segment: Segment, index: int) -> None:
        """Segment sealed mid-recording; the state does not change."""
        print(f"[VoiceTool] Segment {index} ready ({segment.duration_seconds:.1f}s)")
        # Runs on the recorder's tick thread, which must not wait on the tool lock
        self.dispatch(Event("segment", index=index), block=False)

    def _finish_recording(self, kind: str) -> None:
        with self._lock:
            elapsed_ms = 0.0
            session = self.session
            if session is not None and session.started_at is not None:
                elapsed_ms = (self.clock() - session.started_at) * 1000
            self.dispatch(Event(kind, elapsed_ms=elapsed_ms))

    def _begin_processing(self, session: Optional[ToolSession]) -> None:
        """Stop the recorder and hand the recording to a worker thread."""
        if session is None or session.recorder is None:
            self.dispatch(Event("failed", error=VoiceNoteError("No recording in progress")))
            return

        try:
            recording = session.recorder.stop()
        except Exception as e:
            print(f"[VoiceTool] Failed to stop recording: {e}")
            self.dispatch(Event("failed", error=e))
            return

        # Settings are re-read on entering processing
        snapshot = self.config_snapshot_fn()
        if not snapshot.has_credentials:
            self.dispatch(Event("failed", error=CredentialsRequired()))
            return

        token = CancelToken()
        session.cancel = token
        anchor = self.host.get_anchor()

        worker = threading.Thread(
            target=self._process,
            args=(recording, snapshot, token, anchor),
            daemon=True,
        )
        self._worker = worker
        worker.start()

    def _process(self, recording, snapshot: ConfigSnapshot, token: CancelToken, anchor) -> None:
        """Runs on the worker thread; reports back through dispatch()."""
        start = time.time()
        try:
            outcome = self.orchestrator.run(recording, snapshot, token, anchor)
        except Exception as e:
            if not isinstance(e, VoiceNoteError):
                print(f"[VoiceTool] Unexpected processing error: {e!r}")
            self.dispatch(Event("failed", error=e, episode=token))
            return
        finally:
            if self.metrics:
                log_session_complete(
                    self.metrics,
                    total_duration_ms=(time.time() - start) * 1000,
                    segments=len(recording.segments),
                    cancelled=token.cancelled,
                )

        self.dispatch(Event("finished", outcome=outcome, episode=token))
