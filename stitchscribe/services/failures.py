"""Classification of engine error kinds."""

from enum import Enum
from typing import FrozenSet

from ..transcription.profiles import EngineProfile

# Expected during normal operation; never counted as failures
IGNORED_ERRORS: FrozenSet[str] = frozenset({"no-speech", "aborted"})

# Transient; recovered by replacing the engine instance
RESTARTABLE_ERRORS: FrozenSet[str] = frozenset({"network", "audio-capture", "service-not-allowed"})


class ErrorDisposition(Enum):
    IGNORE = "ignore"
    RESTART = "restart"
    FAIL = "fail"


class RecognitionFatalError(RuntimeError):
    """Sustained engine failure surfaced to the caller."""

    def __init__(self, error_kind: str, failures: int):
        super().__init__(f"Speech recognition error: {error_kind}")
        self.error_kind = error_kind
        self.failures = failures


def classify_error(error_kind: str, profile: EngineProfile) -> ErrorDisposition:
    if error_kind in IGNORED_ERRORS:
        return ErrorDisposition.IGNORE
    if error_kind in RESTARTABLE_ERRORS or error_kind in profile.extra_restartable_errors:
        return ErrorDisposition.RESTART
    return ErrorDisposition.FAIL
