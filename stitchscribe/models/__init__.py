"""Data models for the stitchscribe package."""

from .transcription import RecognitionResult, Segment, WordToken, OverlapResult
from .audio import AudioStats, DecodedAudio, TrimConfig, TrimResult
from .session import (
    Session,
    SessionState,
    SessionLimits,
    WatchdogSettings,
    PauseMetrics,
    TranscriptSnapshot,
)
from .events import (
    AudioEvent,
    EngineStarted,
    EngineResult,
    EngineError,
    EngineEnded,
    SessionEvent,
)

__all__ = [
    "RecognitionResult",
    "Segment",
    "WordToken",
    "OverlapResult",
    "AudioStats",
    "DecodedAudio",
    "TrimConfig",
    "TrimResult",
    "Session",
    "SessionState",
    "SessionLimits",
    "WatchdogSettings",
    "PauseMetrics",
    "TranscriptSnapshot",
    # Engine and pub/sub events
    "AudioEvent",
    "EngineStarted",
    "EngineResult",
    "EngineError",
    "EngineEnded",
    "SessionEvent",
]
