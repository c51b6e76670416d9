"""Abstract base classes for streaming recognition engines."""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import logging

from ..models.events import EngineEnded, EngineError, EngineResult, EngineStarted

logger = logging.getLogger(__name__)


class EngineStateError(RuntimeError):
    """Raised when an engine primitive is called in the wrong state."""


class EngineUnavailableError(RuntimeError):
    """Raised when a recognition engine cannot be constructed."""


class AbstractRecognitionEngine(ABC):
    """One streaming recognition connection.

    Mirrors the browser recognition object: configuration flags, an optional
    language hint, three primitives and four callback slots. An instance
    lives for one stretch of a capture session and is never restarted once
    it has ended.
    """

    def __init__(self):
        self.continuous = True
        self.interim_results = True
        self.lang: Optional[str] = None

        self.onstart: Optional[Callable[[EngineStarted], None]] = None
        self.onresult: Optional[Callable[[EngineResult], None]] = None
        self.onerror: Optional[Callable[[EngineError], None]] = None
        self.onend: Optional[Callable[[EngineEnded], None]] = None

    @abstractmethod
    def start(self) -> None:
        """Begin recognition. Fires ``onstart`` once running."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop listening; pending finals are delivered before ``onend``.

        Raises:
            EngineStateError: if the engine is not running
        """
        pass

    @abstractmethod
    def abort(self) -> None:
        """Stop immediately and drop pending results."""
        pass


class AbstractEngineFactory(ABC):
    """Creates a fresh engine instance for each stretch of a session."""

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether the recognition capability is available at all."""
        pass

    @abstractmethod
    def create(self) -> AbstractRecognitionEngine:
        """Construct an unconfigured engine.

        Raises:
            EngineUnavailableError: if construction fails
        """
        pass
