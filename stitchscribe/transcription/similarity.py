"""Text comparison helpers used to stitch engine results into one transcript.

Streaming engines re-emit the sentence boundary they already finalized,
especially across a restart, and sometimes deliver the same final twice
with different casing or punctuation. These helpers detect both cases.
"""

import re
from typing import List, Sequence

from ..models.transcription import OverlapResult

_PUNCTUATION = re.compile(r"[.,!?;:'\"]")
_WHITESPACE = re.compile(r"\s+")

# Shorter text must be more than this share of the longer one to count as a duplicate
DUPLICATE_LENGTH_RATIO = 0.8

# How many trailing words of the previous segment are searched for overlap
MAX_OVERLAP_WORDS = 5


def normalize(text: str) -> str:
    """Lowercase, trim, drop punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower().strip())
    return _WHITESPACE.sub(" ", text).strip()


def fuzzy_duplicate(a: str, b: str) -> bool:
    """Return True if ``a`` and ``b`` are the same utterance.

    Texts are equal after normalization, or one contains the other and the
    shorter one is more than 80% of the longer one's length.
    """
    norm_a = normalize(a)
    norm_b = normalize(b)

    if norm_a == norm_b:
        return True
    if not norm_a or not norm_b:
        return False

    if norm_a in norm_b or norm_b in norm_a:
        shorter, longer = sorted((norm_a, norm_b), key=len)
        return len(shorter) / len(longer) > DUPLICATE_LENGTH_RATIO

    return False


def _contains_run(haystack: Sequence[str], needle: Sequence[str]) -> bool:
    size = len(needle)
    return any(
        list(haystack[i:i + size]) == list(needle)
        for i in range(len(haystack) - size + 1)
    )


def _tail(last_segment: str) -> List[str]:
    return normalize(last_segment).split(" ")[-MAX_OVERLAP_WORDS:]


def repeats_tail(new_text: str, last_segment: str) -> bool:
    """Return True if every word of ``new_text`` already ends ``last_segment``.

    Such a final is the engine re-emitting a boundary it already finalized
    and adds nothing new.
    """
    words = normalize(new_text).split()
    if not words or not last_segment:
        return False
    return _contains_run(_tail(last_segment), words)


def overlap_trim(new_text: str, last_segment: str) -> OverlapResult:
    """Drop the prefix of ``new_text`` that repeats the tail of ``last_segment``.

    The last five normalized words of ``last_segment`` form the tail. Prefixes
    of one to five words of ``new_text`` are tried longest first and the first
    one found as a contiguous run in the tail is removed once. The remainder
    keeps its original casing. If all of ``new_text`` is in the tail nothing is
    removed; callers check that case with ``repeats_tail``.

    Args:
        new_text: Newly finalized text
        last_segment: Text of the last stored segment

    Returns:
        OverlapResult with the text to store
    """
    if not new_text or not last_segment:
        return OverlapResult(has_overlap=False, text=new_text)

    tail = _tail(last_segment)

    raw_words = new_text.split()
    normalized = [normalize(word) for word in raw_words]
    # Index into raw_words of every word that survives normalization
    positions: List[int] = [i for i, word in enumerate(normalized) if word]
    words = [normalized[i] for i in positions]

    if not words or _contains_run(tail, words):
        return OverlapResult(has_overlap=False, text=new_text)

    longest = min(MAX_OVERLAP_WORDS, len(words) - 1)
    for size in range(longest, 0, -1):
        if not _contains_run(tail, words[:size]):
            continue
        remainder = " ".join(raw_words[positions[size]:]).strip()
        if remainder:
            return OverlapResult(has_overlap=True, text=remainder)

    return OverlapResult(has_overlap=False, text=new_text)
