"""Tracks gaps between speech events during a capture session."""

import logging
import time
from typing import Callable, List, Optional

from ..models.session import PauseMetrics

logger = logging.getLogger(__name__)


class PauseTracker:
    """Records a timestamp per speech event and derives pause statistics."""

    def __init__(self,
                 clock: Callable[[], float] = time.monotonic,
                 pause_threshold_s: float = 1.0,
                 long_pause_threshold_s: float = 3.0):
        self.clock = clock
        self.pause_threshold_s = pause_threshold_s
        self.long_pause_threshold_s = long_pause_threshold_s
        self.start_time: Optional[float] = None
        self.stop_time: Optional[float] = None
        self.events: List[float] = []

    def start(self) -> None:
        self.reset()
        self.start_time = self.clock()

    def stop(self) -> None:
        if self.start_time is not None and self.stop_time is None:
            self.stop_time = self.clock()

    def record_speech_event(self) -> None:
        self.events.append(self.clock())

    def reset(self) -> None:
        self.start_time = None
        self.stop_time = None
        self.events = []

    def get_metrics(self) -> PauseMetrics:
        """Compute pause statistics from consecutive event deltas.

        The gap between the session start and the first speech event counts
        as a pause as well.
        """
        end = self.stop_time if self.stop_time is not None else self.clock()
        total = (end - self.start_time) if self.start_time is not None else 0.0

        marks = ([self.start_time] if self.start_time is not None else []) + self.events
        gaps = [later - earlier for earlier, later in zip(marks, marks[1:])]
        pauses = [gap for gap in gaps if gap >= self.pause_threshold_s]
        long_pauses = [gap for gap in pauses if gap >= self.long_pause_threshold_s]

        return PauseMetrics(
            total_duration_s=max(0.0, total),
            speech_event_count=len(self.events),
            pause_count=len(pauses),
            long_pause_count=len(long_pauses),
            longest_pause_s=max(pauses, default=0.0),
            average_pause_s=(sum(pauses) / len(pauses)) if pauses else 0.0,
            pauses=tuple(pauses),
        )
