"""
Shared type definitions for VoiceNote.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Tuple, Literal

import numpy as np


MergePolicy = Literal["individual", "merged"]
MERGE_POLICIES: Tuple[str, ...] = ("individual", "merged")
DEFAULT_MERGE_POLICY: MergePolicy = "individual"

Severity = Literal["success", "warning", "error"]


@dataclass(frozen=True)
class Segment:
    """One sealed slice of recorded audio."""
    index: int                  # 0-based, contiguous within a recording
    audio: np.ndarray           # mono float32 samples
    data: bytes                 # encoded audio (WAV, PCM_16)
    sample_rate: int
    mime_type: str = "audio/wav"

    @property
    def duration_seconds(self) -> float:
        return len(self.audio) / self.sample_rate if self.sample_rate else 0.0

    @property
    def is_empty(self) -> bool:
        return len(self.audio) == 0


@dataclass(frozen=True)
class RecordingResult:
    """
    Returned by SegmentedRecorder.stop().

    Concatenating the segments' audio in index order gives `audio`.
    """
    audio: np.ndarray
    segments: Tuple[Segment, ...]
    sample_rate: int
    mime_type: str = "audio/wav"

    @property
    def data(self) -> bytes:
        """The whole recording as WAV bytes, encoded on access."""
        from .audio import encode_wav
        return encode_wav(self.audio, self.sample_rate)

    @property
    def duration_seconds(self) -> float:
        return len(self.audio) / self.sample_rate if self.sample_rate else 0.0


@dataclass
class ChunkResult:
    """Outcome of transcribing one segment."""
    index: int
    text: str
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class OutputPayload:
    """Text destined for one output artifact, and where to place it."""
    text: str
    position: Position


@dataclass
class TranscriptionOutcome:
    """Reconciled result of one processing episode."""
    payloads: List[OutputPayload]
    merge_policy: MergePolicy
    segment_count: int
    success_count: int
    failed_count: int = 0

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.payloads)

    def preview(self, limit: int = 50) -> str:
        text = self.text
        return text[:limit] + "..." if len(text) > limit else text


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable snapshot of the voice settings.
    Taken when a state is entered so mid-session edits apply to the next recording.
    """
    api_key: Optional[str]
    model: str
    merge_policy: MergePolicy = DEFAULT_MERGE_POLICY

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_key.strip())
