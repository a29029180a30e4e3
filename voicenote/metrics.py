"""
Thread-safe diagnostics logging with batched writes.

One JSON object per line in ~/.voicenote/metrics.jsonl. The recorder's tick
thread, the per-segment request threads and the processing worker all log
through the same writer.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    log_reconcile(metrics, segment_count=3, success_count=2, failed_count=1, ...)
"""

import json
import time
import threading
from queue import Queue, Empty
from pathlib import Path
from typing import Any, Optional


class MetricsWriter:
    """
    JSONL writer fed through a queue.

    log() never blocks the caller; a daemon thread drains the queue and
    appends whole batches at once.
    """

    def __init__(self, metrics_file: Path):
        self.metrics_file = metrics_file
        self._queue: Queue[dict] = Queue()
        self._shutdown = threading.Event()
        self._writer_thread = threading.Thread(target=self._writer_loop, daemon=True)
        self._writer_thread.start()

    def log(self, event: str, **kwargs: Any) -> None:
        """
        Queue an event for writing.

        Args:
            event: Event name (e.g., "segment_sealed", "reconcile")
            **kwargs: Event fields; values json can't encode are written as str()
        """
        self._queue.put({"ts": time.time(), "event": event, **kwargs})

    def _writer_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                batch = [self._queue.get(timeout=1.0)]
            except Empty:
                continue

            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except Empty:
                    break

            self._write_entries(batch)

    def _write_entries(self, entries: list[dict]) -> None:
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
            lines = "".join(json.dumps(entry, default=str) + "\n" for entry in entries)
            with open(self.metrics_file, "a") as f:
                f.write(lines)
        except OSError as e:
            print(f"[Metrics] Failed to write {len(entries)} event(s): {e}")

    def flush(self) -> None:
        """Write whatever is still queued on the calling thread."""
        pending = []
        while True:
            try:
                pending.append(self._queue.get_nowait())
            except Empty:
                break

        if pending:
            self._write_entries(pending)

    def shutdown(self) -> None:
        """Stop the writer thread, then write the remainder."""
        self._shutdown.set()
        self._writer_thread.join(timeout=2.0)
        self.flush()


# Global instance (initialized lazily)
_metrics: MetricsWriter | None = None


def get_metrics(metrics_file: Path) -> MetricsWriter:
    """Get or create the global metrics writer."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsWriter(metrics_file)
    return _metrics


# Typed helpers so every caller writes the same fields per event

def log_recording_started(metrics: MetricsWriter, sample_rate: Optional[int] = None) -> None:
    metrics.log("recording_started", sample_rate=sample_rate)


def log_segment_sealed(metrics: MetricsWriter, index: int, audio_duration_ms: float) -> None:
    """Log segment_sealed event (one per 45s boundary, plus the final segment)."""
    metrics.log(
        "segment_sealed",
        index=index,
        audio_duration_ms=round(audio_duration_ms, 1),
    )


def log_transcription(
    metrics: MetricsWriter,
    index: int,
    success: bool,
    latency_ms: float,
    text: str = "",
    error: Optional[str] = None,
) -> None:
    """Log transcription event for one segment request."""
    metrics.log(
        "transcription",
        index=index,
        success=success,
        latency_ms=int(latency_ms),
        text=text[:200],  # Truncate for metrics
        error=error,
    )


def log_reconcile(
    metrics: MetricsWriter,
    segment_count: int,
    success_count: int,
    failed_count: int,
    merge_policy: str,
    latency_ms: float,
) -> None:
    """Log reconcile event: how many segments made it into the output."""
    metrics.log(
        "reconcile",
        segment_count=segment_count,
        success_count=success_count,
        failed_count=failed_count,
        merge_policy=merge_policy,
        latency_ms=int(latency_ms),
    )


def log_session_complete(
    metrics: MetricsWriter,
    total_duration_ms: float,
    segments: int,
    cancelled: bool,
) -> None:
    """Log session_complete event when a processing episode ends."""
    metrics.log(
        "session_complete",
        total_duration_ms=int(total_duration_ms),
        segments=segments,
        cancelled=cancelled,
    )
