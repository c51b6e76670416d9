"""Transcription-related data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RecognitionResult:
    """One entry of the engine's incrementally-appended result list."""
    transcript: str
    is_final: bool
    confidence: Optional[float] = None


@dataclass(frozen=True)
class Segment:
    """A finalized, immutable chunk of transcript text."""
    text: str
    segment_id: int
    created_at: float
    source: str = "final"  # "final" | "flushed-interim"


@dataclass(frozen=True)
class WordToken:
    """A word derived from a segment by whitespace splitting.

    ``is_ghost`` and ``is_filler`` are reserved and always False.
    """
    text: str
    timestamp: float
    word_id: int
    is_ghost: bool = False
    is_filler: bool = False


@dataclass(frozen=True)
class OverlapResult:
    """Outcome of trimming new text against the previous segment's tail."""
    has_overlap: bool
    text: str
