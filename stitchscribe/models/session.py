"""Session-related data models.

A ``Session`` is one capture attempt from ``start()`` to a terminal stop,
abort or fatal error. It is immutable: every transition method returns the
next value and the session manager swaps its reference.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from .transcription import WordToken


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    RESTARTING = "restarting"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True)
class Session:
    """Flags, timestamps and counters of one capture attempt."""
    session_id: int = 0
    state: SessionState = SessionState.IDLE
    is_recording: bool = False
    is_manual_stop: bool = False
    is_restarting: bool = False
    started_at: float = 0.0          # when start() was called
    session_started_at: float = 0.0  # when the current engine instance was created
    last_result_at: float = 0.0
    ended_at: Optional[float] = None
    consecutive_failures: int = 0
    transient_retries: int = 0
    restart_count: int = 0
    extended_silences: int = 0
    error: Optional[str] = None

    @classmethod
    def begin(cls, session_id: int, now: float) -> "Session":
        return cls(
            session_id=session_id,
            state=SessionState.STARTING,
            is_recording=True,
            started_at=now,
            session_started_at=now,
            last_result_at=now,
        )

    @property
    def accepts_restart(self) -> bool:
        return self.is_recording and not self.is_manual_stop

    def duration(self, now: float) -> float:
        if self.is_recording:
            return now - self.started_at
        if self.ended_at is not None:
            return self.ended_at - self.started_at
        return 0.0

    def duration_cleared(self) -> "Session":
        if self.is_recording:
            return self
        return replace(self, ended_at=None)

    def listening(self) -> "Session":
        return replace(self, state=SessionState.LISTENING, error=None)

    def with_result(self, now: float) -> "Session":
        # A live result proves the engine is healthy.
        return replace(self, last_result_at=now, consecutive_failures=0, transient_retries=0)

    def with_failure(self) -> "Session":
        return replace(self, consecutive_failures=self.consecutive_failures + 1)

    def with_transient_retry(self) -> "Session":
        return replace(self, transient_retries=self.transient_retries + 1)

    def with_extended_silence(self) -> "Session":
        return replace(self, extended_silences=self.extended_silences + 1)

    def restarting(self) -> "Session":
        return replace(self, state=SessionState.RESTARTING, is_restarting=True)

    def restarted(self, now: float) -> "Session":
        return replace(
            self,
            is_restarting=False,
            session_started_at=now,
            restart_count=self.restart_count + 1,
        )

    def restart_cancelled(self) -> "Session":
        return replace(self, is_restarting=False)

    def stopping(self) -> "Session":
        # is_recording stays True so late results are still admitted
        return replace(self, state=SessionState.STOPPING, is_manual_stop=True)

    def stopped(self, now: float) -> "Session":
        return replace(
            self,
            state=SessionState.STOPPED,
            is_recording=False,
            is_restarting=False,
            ended_at=now,
        )

    def aborted(self, now: float) -> "Session":
        return replace(
            self,
            state=SessionState.STOPPED,
            is_recording=False,
            is_manual_stop=True,
            is_restarting=False,
            ended_at=now,
        )

    def failed(self, message: str, now: float) -> "Session":
        return replace(
            self,
            state=SessionState.ERROR,
            is_recording=False,
            is_manual_stop=True,
            is_restarting=False,
            ended_at=now,
            error=message,
        )


@dataclass(frozen=True)
class SessionLimits:
    """Retry ceilings and fixed delays used by the session manager."""
    max_transient_retries: int = 3
    max_consecutive_failures: int = 10
    stop_grace_s: float = 0.15
    silence_timeout_s: float = 10.0
    accent_restart_delay_s: float = 0.3


@dataclass(frozen=True)
class WatchdogSettings:
    interval_s: float = 2.0
    silence_ceiling_s: float = 12.0
    warmup_s: float = 5.0


@dataclass(frozen=True)
class PauseMetrics:
    """Aggregate of silence gaps between speech events in one session."""
    total_duration_s: float
    speech_event_count: int
    pause_count: int
    long_pause_count: int
    longest_pause_s: float
    average_pause_s: float
    pauses: Tuple[float, ...] = ()


@dataclass(frozen=True)
class TranscriptSnapshot:
    """Artifacts handed to upstream collaborators."""
    session_id: int
    state: SessionState
    raw_transcript: str
    final_transcript: str
    interim_transcript: str
    words: Tuple[WordToken, ...]
    pause_metrics: Optional[PauseMetrics]
    session_duration: float
    profile: str
    accent: str
    restart_count: int
    error: Optional[str] = None
    ghost_words: Tuple[str, ...] = field(default=())
