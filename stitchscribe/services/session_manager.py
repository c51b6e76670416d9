"""Session manager: keeps one logical capture session alive across engine restarts."""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Tuple, Type

from ..models.events import EngineEnded, EngineError, EngineResult, EngineStarted
from ..models.session import (
    PauseMetrics,
    Session,
    SessionLimits,
    SessionState,
    TranscriptSnapshot,
    WatchdogSettings,
)
from ..models.transcription import WordToken
from ..transcription.base import (
    AbstractEngineFactory,
    AbstractRecognitionEngine,
    EngineStateError,
)
from ..transcription.pause_tracker import PauseTracker
from ..transcription.profiles import EngineProfile
from ..transcription.publisher import SessionPublisher
from ..transcription.segment_buffer import SegmentBuffer
from .failures import ErrorDisposition, RecognitionFatalError, classify_error
from .watchdog import Watchdog

logger = logging.getLogger(__name__)

# States in which start() is refused
ACTIVE_STATES = (
    SessionState.STARTING,
    SessionState.LISTENING,
    SessionState.RESTARTING,
    SessionState.STOPPING,
)

# States from which stop() proceeds
STOPPABLE_STATES = (
    SessionState.STARTING,
    SessionState.LISTENING,
    SessionState.RESTARTING,
)


class SessionManager:
    """Orchestrates a streaming recognition engine for continuous capture.

    The engine silently ends itself after a profile-specific limit. The
    manager replaces it with a new instance every time, stitches the
    results of all instances into one transcript, and only surfaces an
    error once failures become sustained.

    Everything runs on one asyncio loop. Engine callbacks post typed events
    into a queue that is drained in arrival order; timers use
    ``loop.call_later``. Reentrancy is guarded by the session flags.
    """

    def __init__(self,
                 engine_factory: Optional[AbstractEngineFactory],
                 profile: EngineProfile,
                 loop: Optional[asyncio.AbstractEventLoop] = None,
                 accent: str = "en-US",
                 limits: SessionLimits = SessionLimits(),
                 watchdog_settings: WatchdogSettings = WatchdogSettings(),
                 publisher: Optional[SessionPublisher] = None,
                 pause_tracker: Optional[PauseTracker] = None):
        """Initialize session manager.

        Args:
            engine_factory: Creates engine instances; None means unsupported
            profile: Engine profile (ceilings, restart delay, error quirks)
            loop: Event loop; defaults to the running loop
            accent: Language hint for engines that accept one
            limits: Retry ceilings and grace periods
            watchdog_settings: Watchdog tick, silence ceiling and warm-up
            publisher: Optional pub/sub publisher for session notifications
            pause_tracker: Optional pause tracker (defaults to one on the loop clock)
        """
        self.engine_factory = engine_factory
        self.profile = profile
        self.loop = loop or asyncio.get_running_loop()
        self.accent = accent
        self.limits = limits
        self.publisher = publisher

        self.buffer = SegmentBuffer(clock=self.loop.time)
        self.pause_tracker = pause_tracker or PauseTracker(clock=self.loop.time)
        self.watchdog = Watchdog(
            self.loop,
            get_session=lambda: self._session,
            restart=self.safe_restart,
            max_session_s=profile.max_session_s,
            settings=watchdog_settings,
        )

        self._session = Session()
        self._session_counter = 0
        self._engine: Optional[AbstractRecognitionEngine] = None
        self._pause_metrics: Optional[PauseMetrics] = None

        # Event queue: (engine that posted, event)
        self._events: Deque[Tuple[AbstractRecognitionEngine, Any]] = deque()
        self._draining = False
        self._handlers: Dict[Type, Callable[[Any], None]] = {
            EngineStarted: self._handle_start,
            EngineResult: self._handle_result,
            EngineError: self._handle_error,
            EngineEnded: self._handle_end,
        }

        # Timer handles
        self._restart_handle = None
        self._silence_handle = None
        self._stop_handle = None
        self._accent_handle = None

        logger.info(f"SessionManager initialized with profile '{profile.name}' (accent {accent})")

    # ==================== ARTIFACTS ====================

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def error(self) -> Optional[str]:
        return self._session.error

    @property
    def is_supported(self) -> bool:
        return self.engine_factory is not None and self.engine_factory.is_supported()

    @property
    def is_listening(self) -> bool:
        return self._session.state in (
            SessionState.LISTENING,
            SessionState.RESTARTING,
            SessionState.STOPPING,
        )

    @property
    def raw_transcript(self) -> str:
        return self.buffer.transcript

    @property
    def final_transcript(self) -> str:
        return self.buffer.transcript

    @property
    def interim_transcript(self) -> str:
        return self.buffer.interim

    @property
    def words(self) -> Tuple[WordToken, ...]:
        return self.buffer.words

    @property
    def ghost_words(self) -> Tuple[str, ...]:
        # Ghost word recovery is disabled
        return ()

    @property
    def pause_metrics(self) -> Optional[PauseMetrics]:
        return self._pause_metrics

    @property
    def session_duration(self) -> float:
        return self._session.duration(self.loop.time())

    @property
    def restart_count(self) -> int:
        return self._session.restart_count

    def snapshot(self) -> TranscriptSnapshot:
        return TranscriptSnapshot(
            session_id=self._session.session_id,
            state=self._session.state,
            raw_transcript=self.raw_transcript,
            final_transcript=self.final_transcript,
            interim_transcript=self.interim_transcript,
            words=self.words,
            pause_metrics=self._pause_metrics,
            session_duration=self.session_duration,
            profile=self.profile.name,
            accent=self.accent,
            restart_count=self._session.restart_count,
            error=self._session.error,
        )

    # ==================== PUBLIC API ====================

    def start(self) -> None:
        """Start a new capture session with a fresh engine instance."""
        if self._session.state in ACTIVE_STATES:
            logger.warning(f"Capture already in progress ({self._session.state.value})")
            return

        self._cancel_timers()
        self._session_counter += 1

        if not self.is_supported:
            self._session = Session(session_id=self._session_counter)
            self.pause_tracker.reset()
            self._pause_metrics = None
            self._fail("Speech recognition not supported", error_kind="unsupported")
            return

        logger.info("Starting capture session...")
        self.buffer.clear()
        self._pause_metrics = None
        self._session = Session.begin(self._session_counter, self.loop.time())
        self.pause_tracker.start()

        try:
            self._create_engine().start()
        except Exception as e:
            logger.error(f"Failed to start speech recognition: {e}")
            self._fail(f"Failed to start speech recognition: {e}", error_kind="start-failed")
            return

        self._reset_silence_timer()
        self._publish_state()
        logger.info(f"Capture session {self._session.session_id} started")

    def stop(self) -> None:
        """Stop capturing, admitting late results for a short grace period.

        The engine delivers its last finals shortly after ``stop()``; pending
        interim text is flushed once the grace period ends.
        """
        self._cancel_handle("_accent_handle")
        session = self._session
        if session.state not in STOPPABLE_STATES:
            logger.warning(f"No capture in progress ({session.state.value})")
            return

        logger.info(f"Stopping... ({len(self.buffer)} segments, "
                     f"interim pending: {bool(self.buffer.interim.strip())})")

        self._session = session.stopping()
        self.watchdog.cancel()
        self._cancel_timers()
        self._publish_state()

        if self._engine is not None:
            try:
                self._engine.stop()
            except EngineStateError:
                logger.debug("Engine already stopped")

        self._stop_handle = self.loop.call_later(self.limits.stop_grace_s, self._finish_stop)

    def abort(self) -> None:
        """Hard stop. Pending interim text is dropped."""
        logger.info("Aborting...")
        self.watchdog.cancel()
        self._cancel_timers()
        self.buffer.discard_interim()

        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                engine.abort()
            except EngineStateError:
                logger.debug("Engine already stopped")

        if self._session.state in (SessionState.IDLE, SessionState.STOPPED, SessionState.ERROR):
            return

        self.pause_tracker.stop()
        self._pause_metrics = self.pause_tracker.get_metrics()
        self._session = self._session.aborted(self.loop.time())
        self._publish_state()

    def clear_transcript(self) -> None:
        """Empty the transcript, words and pause metrics. The engine is untouched."""
        self.buffer.clear()
        self._pause_metrics = None
        if self._session.is_recording:
            self.pause_tracker.start()
        else:
            self.pause_tracker.reset()
        self._session = self._session.duration_cleared()
        self._publish_transcript()

    def set_accent(self, accent: str) -> None:
        """Change the language hint used for the next engine instance.

        On accent-sensitive profiles a listening session is stopped and
        started again so the new accent takes effect.
        """
        self.accent = accent
        logger.info(f"Accent set to {accent}")

        if self._session.state is SessionState.LISTENING and self.profile.accent_sensitive:
            self.stop()
            self._accent_handle = self.loop.call_later(
                self.limits.accent_restart_delay_s, self._restart_for_accent
            )

    def safe_restart(self, reason: str = "requested") -> None:
        """Replace the engine instance.

        Only stops the current engine; the end handler performs the
        re-creation so in-flight results are not raced.
        """
        session = self._session
        if not session.accepts_restart:
            logger.debug("safe_restart: not recording or manual stop, skipping")
            return
        if session.is_restarting:
            logger.debug("safe_restart: already restarting, skipping")
            return

        logger.info(f"Performing safe restart ({reason})")
        self._session = session.restarting()
        self.watchdog.cancel()
        self._publish_state()

        if self._engine is None:
            self._schedule_recreate()
            return
        try:
            self._engine.stop()
        except EngineStateError:
            logger.info("Engine already stopped, scheduling re-creation directly")
            self._schedule_recreate()

    # ==================== ENGINE LIFECYCLE ====================

    def _create_engine(self) -> AbstractRecognitionEngine:
        engine = self.engine_factory.create()
        engine.continuous = True
        engine.interim_results = True
        if self.profile.sets_language_hint:
            engine.lang = self.accent

        # Attached once; the engine is replaced, never re-wired
        engine.onstart = self._bind(engine)
        engine.onresult = self._bind(engine)
        engine.onerror = self._bind(engine)
        engine.onend = self._bind(engine)

        self._engine = engine
        logger.debug(f"Created {self.profile.name} engine instance (lang={engine.lang})")
        return engine

    def _bind(self, engine: AbstractRecognitionEngine) -> Callable[[Any], None]:
        def post(event: Any) -> None:
            self._post(engine, event)
        return post

    def _post(self, engine: AbstractRecognitionEngine, event: Any) -> None:
        self._events.append((engine, event))
        if self._draining:
            return

        self._draining = True
        try:
            while self._events:
                source, queued = self._events.popleft()
                if source is not self._engine:
                    logger.debug(f"Dropping {type(queued).__name__} from a retired engine")
                    continue
                handler = self._handlers.get(type(queued))
                if handler is None:
                    logger.warning(f"Unknown engine event: {queued!r}")
                    continue
                handler(queued)
        finally:
            self._draining = False

    def _schedule_recreate(self) -> None:
        self._cancel_handle("_restart_handle")
        self._restart_handle = self.loop.call_later(self.profile.restart_delay_s, self._recreate_engine)

    def _recreate_engine(self) -> None:
        self._restart_handle = None
        session = self._session
        if not session.accepts_restart:
            self._session = session.restart_cancelled()
            return

        self._session = session.restarted(self.loop.time())
        # The next instance's first result must not be compared with the old one's last
        self.buffer.forget_last_final()

        try:
            self._create_engine().start()
            logger.info(f"Engine restarted (restart #{self._session.restart_count})")
        except Exception as e:
            logger.error(f"Restart failed: {e}")
            self._engine = None
            self._session = session.with_failure()
            if self._session.consecutive_failures >= self.limits.max_consecutive_failures:
                self._fail(str(RecognitionFatalError("restart-failed", self._session.consecutive_failures)),
                           error_kind="restart-failed")
                return
            self._schedule_recreate()

    # ==================== EVENT HANDLERS ====================

    def _handle_start(self, event: EngineStarted) -> None:
        logger.debug("onstart fired")
        if self._session.state not in (SessionState.STARTING, SessionState.RESTARTING):
            return
        self._session = self._session.listening()
        self.watchdog.start()
        self._publish_state()

    def _handle_result(self, event: EngineResult) -> None:
        if not self._session.is_recording:
            return

        self._session = self._session.with_result(self.loop.time())
        if self._session.accepts_restart:
            self._reset_silence_timer()
        self.pause_tracker.record_speech_event()

        for result in event.results[event.result_index:]:
            if result.is_final:
                self.buffer.add_final(result.transcript)
            else:
                self.buffer.set_interim(result.transcript)

        self._publish_transcript()

    def _handle_error(self, event: EngineError) -> None:
        kind = event.error
        logger.warning(f"Engine error: {kind} {event.message}".rstrip())

        disposition = classify_error(kind, self.profile)
        if disposition is ErrorDisposition.IGNORE:
            return

        session = self._session
        if not session.accepts_restart:
            return

        session = session.with_failure()
        if disposition is ErrorDisposition.RESTART:
            session = session.with_transient_retry()
        self._session = session

        if session.consecutive_failures >= self.limits.max_consecutive_failures:
            self._fail(str(RecognitionFatalError(kind, session.consecutive_failures)), error_kind=kind)
            return

        if (disposition is ErrorDisposition.RESTART
                and session.transient_retries <= self.limits.max_transient_retries):
            logger.info(f"Transient error, retrying "
                        f"({session.transient_retries}/{self.limits.max_transient_retries})")
            self.safe_restart(f"error {kind}")
            return

        logger.info(f"Absorbed engine failure {session.consecutive_failures}/"
                    f"{self.limits.max_consecutive_failures}")

    def _handle_end(self, event: EngineEnded) -> None:
        session = self._session
        logger.debug(f"onend fired (recording={session.is_recording}, "
                     f"manual_stop={session.is_manual_stop}, restarting={session.is_restarting})")

        if self.buffer.flush_interim():
            self._publish_transcript()

        if not session.accepts_restart:
            return

        if not session.is_restarting:
            logger.info("Unexpected end detected, scheduling restart...")
            self._session = session.restarting()
            self.watchdog.cancel()
            self._publish_state()

        self._schedule_recreate()

    # ==================== TIMERS ====================

    def _finish_stop(self) -> None:
        self._stop_handle = None

        if self.buffer.flush_interim():
            logger.debug("Flushed remaining interim after grace period")

        self.pause_tracker.stop()
        self._pause_metrics = self.pause_tracker.get_metrics()
        self._session = self._session.stopped(self.loop.time())
        self._engine = None

        logger.info(f"Stopped with {len(self.buffer)} segments")
        self._publish_transcript()
        self._publish("stopped", snapshot=self.snapshot())

    def _restart_for_accent(self) -> None:
        self._accent_handle = None
        if self._session.state is not SessionState.STOPPED:
            logger.warning(f"Skipping accent restart, session is {self._session.state.value}")
            return
        self.start()

    def _reset_silence_timer(self) -> None:
        self._cancel_handle("_silence_handle")
        self._silence_handle = self.loop.call_later(self.limits.silence_timeout_s, self._on_extended_silence)

    def _on_extended_silence(self) -> None:
        self._silence_handle = None
        if self._session.accepts_restart:
            logger.warning("Extended silence detected")
            self._session = self._session.with_extended_silence()

    def _cancel_handle(self, name: str) -> None:
        handle = getattr(self, name)
        if handle is not None:
            handle.cancel()
            setattr(self, name, None)

    def _cancel_timers(self) -> None:
        for name in ("_restart_handle", "_silence_handle", "_stop_handle", "_accent_handle"):
            self._cancel_handle(name)

    # ==================== FAILURE ====================

    def _fail(self, message: str, error_kind: str) -> None:
        logger.error(message)
        self.watchdog.cancel()
        self._cancel_timers()
        self.buffer.discard_interim()

        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                engine.abort()
            except EngineStateError:
                logger.debug("Engine already stopped")

        if self.pause_tracker.start_time is not None:
            self.pause_tracker.stop()
            self._pause_metrics = self.pause_tracker.get_metrics()

        self._session = self._session.failed(message, self.loop.time())
        self._publish("error", error=message, error_kind=error_kind)

    # ==================== NOTIFICATIONS ====================

    def _publish(self, event_type: str, **metadata: Any) -> None:
        if self.publisher is not None:
            self.publisher.publish(event_type, self._session.session_id, **metadata)

    def _publish_state(self) -> None:
        self._publish("state", state=self._session.state.value)

    def _publish_transcript(self) -> None:
        self._publish(
            "transcript",
            final_transcript=self.final_transcript,
            interim_transcript=self.interim_transcript,
        )
