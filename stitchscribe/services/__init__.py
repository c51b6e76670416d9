"""Services layer for stitchscribe session logic."""

from .session_manager import SessionManager
from .watchdog import Watchdog
from .failures import ErrorDisposition, RecognitionFatalError, classify_error

__all__ = [
    "SessionManager",
    "Watchdog",
    "ErrorDisposition",
    "RecognitionFatalError",
    "classify_error",
]
