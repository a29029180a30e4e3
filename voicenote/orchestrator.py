"""
Transcription orchestration for one processing episode.

Takes a finished recording, transcribes its segments (all at once when there
is more than one), and reconciles the per-segment results into output
payloads according to the merge policy.
"""

import time
from concurrent.futures import ThreadPoolExecutor, wait, Future
from typing import Dict, List, Optional

from .cancel import CancelToken
from .errors import Cancelled, EmptyResultError, NoTranscriptionError
from .metrics import MetricsWriter, log_reconcile, log_transcription
from .providers import Transcriber
from .types import (
    ChunkResult, ConfigSnapshot, MergePolicy, OutputPayload, Position,
    RecordingResult, Segment, TranscriptionOutcome,
)


OUTPUT_SPACING = 220   # Horizontal distance between individual outputs
MERGE_SEPARATOR = "\n\n"


def reconcile(
    results: List[ChunkResult],
    merge_policy: MergePolicy,
    anchor: Position,
) -> TranscriptionOutcome:
    """
    Order, filter and combine per-segment results.

    Completion order is not request order, so successes are explicitly
    re-sorted by segment index before anything is emitted.

    Raises:
        NoTranscriptionError: no segment produced text
    """
    successes = sorted(
        (r for r in results if r.success and r.text.strip()),
        key=lambda r: r.index,
    )
    failed_count = len(results) - len(successes)

    if not successes:
        raise NoTranscriptionError("Could not transcribe any audio segments. Please try again.")

    if merge_policy == "merged":
        text = MERGE_SEPARATOR.join(r.text.strip() for r in successes)
        payloads = [OutputPayload(text=text, position=anchor)]
    else:
        payloads = [
            OutputPayload(
                text=r.text.strip(),
                position=Position(anchor.x + i * OUTPUT_SPACING, anchor.y),
            )
            for i, r in enumerate(successes)
        ]

    return TranscriptionOutcome(
        payloads=payloads,
        merge_policy=merge_policy,
        segment_count=len(results),
        success_count=len(successes),
        failed_count=failed_count,
    )


class TranscriptionOrchestrator:
    """
    Drives a Transcriber over every segment of a recording.

    One segment: a single direct call, its failure is the outcome.
    Several segments: one concurrent call per segment, all sharing the
    episode's CancelToken, joined before reconciliation. Per-segment
    failures are tolerated as long as one segment succeeds.

    Usage:
        orchestrator = TranscriptionOrchestrator(GeminiTranscriber())
        outcome = orchestrator.run(recording, config.snapshot(), CancelToken(), anchor)
    """

    def __init__(self, transcriber: Transcriber, metrics: Optional[MetricsWriter] = None):
        self.transcriber = transcriber
        self.metrics = metrics

    def run(
        self,
        recording: RecordingResult,
        snapshot: ConfigSnapshot,
        cancel: CancelToken,
        anchor: Position,
    ) -> TranscriptionOutcome:
        """
        Transcribe and reconcile one recording.

        Raises:
            Cancelled: the token fired; nothing may be emitted
            NoTranscriptionError: nothing usable came back
            TranscriptionError: single-segment request failed
        """
        segments = list(recording.segments)
        start = time.time()

        if len(segments) == 1:
            outcome = self._run_single(segments[0], snapshot, cancel, anchor)
        else:
            results = self._transcribe_segments(segments, snapshot, cancel)
            outcome = reconcile(results, snapshot.merge_policy, anchor)

        elapsed = time.time() - start
        print(
            f"[Orchestrator] {outcome.success_count}/{outcome.segment_count} segment(s) "
            f"transcribed in {elapsed:.2f}s ({outcome.merge_policy})"
        )
        if outcome.failed_count:
            print(f"[Orchestrator] {outcome.failed_count} segment(s) failed to transcribe")
        if self.metrics:
            log_reconcile(
                self.metrics,
                segment_count=outcome.segment_count,
                success_count=outcome.success_count,
                failed_count=outcome.failed_count,
                merge_policy=outcome.merge_policy,
                latency_ms=elapsed * 1000,
            )
        return outcome

    def _run_single(
        self,
        segment: Segment,
        snapshot: ConfigSnapshot,
        cancel: CancelToken,
        anchor: Position,
    ) -> TranscriptionOutcome:
        """Short recording: transcribe the only segment directly."""
        try:
            text = self.transcriber.transcribe(segment, snapshot.api_key, snapshot.model, cancel)
        except EmptyResultError as e:
            raise NoTranscriptionError("Could not transcribe audio. Please try again.") from e

        cancel.raise_if_cancelled()

        if not text or not text.strip():
            raise NoTranscriptionError("Could not transcribe audio. Please try again.")

        return TranscriptionOutcome(
            payloads=[OutputPayload(text=text.strip(), position=anchor)],
            merge_policy=snapshot.merge_policy,
            segment_count=1,
            success_count=1,
        )

    def _transcribe_segments(
        self,
        segments: List[Segment],
        snapshot: ConfigSnapshot,
        cancel: CancelToken,
    ) -> List[ChunkResult]:
        """
        Transcribe all segments concurrently and wait for every one.

        Raises:
            Cancelled: any call observed cancellation (partial results dropped)
        """
        with ThreadPoolExecutor(max_workers=len(segments)) as executor:
            futures: Dict[Future, int] = {
                executor.submit(self._transcribe_one, segment, snapshot, cancel): segment.index
                for segment in segments
            }
            wait(futures)

        results: List[ChunkResult] = []
        aborted = cancel.cancelled
        for future in futures:
            try:
                results.append(future.result())
            except Cancelled:
                aborted = True

        if aborted:
            print("[Orchestrator] Cancelled; discarding partial results")
            raise Cancelled("Transcription cancelled")

        return results

    def _transcribe_one(
        self,
        segment: Segment,
        snapshot: ConfigSnapshot,
        cancel: CancelToken,
    ) -> ChunkResult:
        """Transcribe one segment; failures other than Cancelled become a ChunkResult."""
        start = time.time()
        try:
            text = self.transcriber.transcribe(segment, snapshot.api_key, snapshot.model, cancel)
        except Cancelled:
            raise
        except Exception as e:
            print(f"[Orchestrator] Segment {segment.index} failed: {e}")
            result = ChunkResult(index=segment.index, text="", success=False, error=str(e))
        else:
            result = ChunkResult(index=segment.index, text=text.strip(), success=True)

        if self.metrics:
            log_transcription(
                self.metrics,
                index=segment.index,
                success=result.success,
                latency_ms=(time.time() - start) * 1000,
                text=result.text,
                error=result.error,
            )
        return result
