"""Event models for the engine callbacks and pub/sub notifications."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .transcription import RecognitionResult


@dataclass
class AudioEvent:
    """Audio chunk event with metadata."""
    chunk_id: str
    audio_data: bytes
    timestamp: float  # Unix timestamp when chunk was captured
    sequence_number: int
    sample_rate: int = 16000
    channels: int = 1
    chunk_duration_ms: Optional[int] = None
    final: bool = False  # True if this is the final chunk for the recording

    def __post_init__(self):
        """Calculate chunk duration if not provided."""
        if self.chunk_duration_ms is None and self.audio_data:
            # 16-bit audio (2 bytes per sample)
            bytes_per_second = self.sample_rate * self.channels * 2
            duration_seconds = len(self.audio_data) / bytes_per_second
            self.chunk_duration_ms = int(duration_seconds * 1000)


# Engine callback events. Each engine callback posts exactly one of these.

@dataclass(frozen=True)
class EngineStarted:
    pass


@dataclass(frozen=True)
class EngineResult:
    """Results from ``result_index`` onward are new or changed."""
    result_index: int
    results: Tuple[RecognitionResult, ...]


@dataclass(frozen=True)
class EngineError:
    error: str
    message: str = ""


@dataclass(frozen=True)
class EngineEnded:
    pass


@dataclass
class SessionEvent:
    """Session lifecycle notification published on the session topic."""
    event_type: str  # "state", "transcript", "error", "stopped"
    session_id: int
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
