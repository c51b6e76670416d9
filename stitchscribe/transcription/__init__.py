"""Transcription module for stitchscribe.

The Google backend is not imported here so the rest of the package works
without the Cloud client libraries installed.
"""

from .base import AbstractRecognitionEngine, AbstractEngineFactory, EngineStateError, EngineUnavailableError
from .profiles import EngineProfile, PROFILES, detect_profile, get_profile
from .segment_buffer import SegmentBuffer
from .pause_tracker import PauseTracker
from .publisher import SessionPublisher
from .similarity import normalize, fuzzy_duplicate, overlap_trim, repeats_tail

__all__ = [
    "AbstractRecognitionEngine",
    "AbstractEngineFactory",
    "EngineStateError",
    "EngineUnavailableError",
    "EngineProfile",
    "PROFILES",
    "detect_profile",
    "get_profile",
    "SegmentBuffer",
    "PauseTracker",
    "SessionPublisher",
    "normalize",
    "fuzzy_duplicate",
    "overlap_trim",
    "repeats_tail",
]
