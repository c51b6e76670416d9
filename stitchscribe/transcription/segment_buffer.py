"""Append-only store of finalized transcript segments."""

import logging
import time
from typing import Callable, List, Optional, Tuple

from ..models.transcription import Segment, WordToken
from .similarity import fuzzy_duplicate, overlap_trim, repeats_tail

logger = logging.getLogger(__name__)


class SegmentBuffer:
    """Single source of truth for the assembled transcript.

    Segments are appended in arrival order and never edited. Interim text is
    held separately and only enters the buffer through ``flush_interim``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize an empty buffer.

        Args:
            clock: Time source used to stamp segments and words
        """
        self.clock = clock
        self._segments: List[Segment] = []
        self._words: List[WordToken] = []
        self._next_word_id = 0
        self._last_final_text = ""
        self._interim = ""

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return tuple(self._segments)

    @property
    def words(self) -> Tuple[WordToken, ...]:
        return tuple(self._words)

    @property
    def transcript(self) -> str:
        return " ".join(segment.text for segment in self._segments)

    @property
    def interim(self) -> str:
        return self._interim

    @property
    def last_final_text(self) -> str:
        return self._last_final_text

    def __len__(self) -> int:
        return len(self._segments)

    def add_final(self, text: str) -> Optional[Segment]:
        """Store a finalized result unless it repeats what is already stored.

        Args:
            text: Finalized text as reported by the engine

        Returns:
            The appended segment, or None if nothing was added
        """
        # A real final supersedes whatever interim was pending
        self._interim = ""
        return self._append(text.strip(), source="final")

    def set_interim(self, text: str) -> None:
        self._interim = text

    def discard_interim(self) -> None:
        self._interim = ""

    def flush_interim(self) -> Optional[Segment]:
        """Move pending interim text into the buffer.

        Used when the engine ends (or we stop) before the interim became final.
        """
        interim = self._interim.strip()
        self._interim = ""
        if not interim:
            return None
        segment = self._append(interim, source="flushed-interim")
        if segment:
            logger.debug(f"Flushed interim text: '{segment.text[:50]}'")
        return segment

    def forget_last_final(self) -> None:
        """Clear the duplicate memo at an engine restart boundary."""
        self._last_final_text = ""

    def clear(self) -> None:
        self._segments.clear()
        self._words.clear()
        self._next_word_id = 0
        self._last_final_text = ""
        self._interim = ""
        logger.debug("Segment buffer cleared")

    def _append(self, text: str, source: str) -> Optional[Segment]:
        if not text:
            return None

        if fuzzy_duplicate(text, self._last_final_text):
            logger.debug(f"Skipping similar duplicate: '{text[:30]}'")
            return None

        last_segment = self._segments[-1].text if self._segments else ""
        if fuzzy_duplicate(text, last_segment) or repeats_tail(text, last_segment):
            logger.debug(f"Skipping repeat of previous segment: '{text[:30]}'")
            return None

        overlap = overlap_trim(text, last_segment)
        if not overlap.text:
            return None

        now = self.clock()
        self._last_final_text = text
        segment = Segment(
            text=overlap.text,
            segment_id=len(self._segments),
            created_at=now,
            source=source,
        )
        self._segments.append(segment)

        for word in overlap.text.split():
            self._words.append(WordToken(text=word, timestamp=now, word_id=self._next_word_id))
            self._next_word_id += 1

        logger.debug(
            f"Segment added: '{overlap.text[:50]}'"
            f"{' (overlap trimmed)' if overlap.has_overlap else ''}"
        )
        return segment
