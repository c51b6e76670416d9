"""Periodic health check that keeps a capture session's engine fresh."""

import logging
from typing import Callable, Optional

from ..models.session import Session, SessionState, WatchdogSettings

logger = logging.getLogger(__name__)


class Watchdog:
    """Restarts the engine before its own cutoff and when it stops emitting results.

    Ticks on the event loop while the session is listening. Two conditions
    trigger ``restart``:

    * the engine instance is older than the profile ceiling (proactive), or
    * no result arrived for ``silence_ceiling_s`` after a short warm-up
      (the engine went quiet without firing its own end event).
    """

    def __init__(self,
                 loop,
                 get_session: Callable[[], Session],
                 restart: Callable[[str], None],
                 max_session_s: float,
                 settings: WatchdogSettings = WatchdogSettings()):
        """Initialize watchdog.

        Args:
            loop: asyncio event loop (anything with ``time`` and ``call_later``)
            get_session: Returns the current session value
            restart: Called with the reason when a restart is due
            max_session_s: Proactive restart ceiling for one engine instance
            settings: Tick interval, silence ceiling and warm-up
        """
        self.loop = loop
        self.get_session = get_session
        self.restart = restart
        self.max_session_s = max_session_s
        self.settings = settings
        self._handle = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._schedule()
        logger.debug(f"Watchdog started (every {self.settings.interval_s}s, "
                     f"ceiling {self.max_session_s}s)")

    def cancel(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Watchdog cancelled")

    def check(self) -> Optional[str]:
        """Run one health check.

        Returns:
            The restart reason ("proactive" or "wedged"), or None
        """
        session = self.get_session()
        if session.state is not SessionState.LISTENING or not session.accepts_restart:
            return None

        now = self.loop.time()
        elapsed = now - session.session_started_at
        since_last_result = now - max(session.last_result_at, session.session_started_at)

        if elapsed >= self.max_session_s:
            logger.info(f"Watchdog: proactive restart after {elapsed:.0f}s")
            reason = "proactive"
        elif since_last_result > self.settings.silence_ceiling_s and elapsed > self.settings.warmup_s:
            logger.warning(f"Watchdog: no results for {since_last_result:.0f}s, forcing restart")
            reason = "wedged"
        else:
            return None

        self.restart(reason)
        return reason

    def _schedule(self) -> None:
        self._handle = self.loop.call_later(self.settings.interval_s, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return
        self.check()
        if self._running:
            self._schedule()
