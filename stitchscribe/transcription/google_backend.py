"""Google Speech-to-Text streaming recognition engine."""

import queue
import logging
import threading
import time
from pathlib import Path
from typing import Iterator, List, Optional

from pubsub import pub

from .base import (
    AbstractEngineFactory,
    AbstractRecognitionEngine,
    EngineStateError,
    EngineUnavailableError,
)
from ..models.events import AudioEvent, EngineEnded, EngineError, EngineResult, EngineStarted
from ..models.transcription import RecognitionResult

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)


def map_api_error(error: gax_exceptions.GoogleAPICallError) -> str:
    """Translate a Cloud API error into a recognition error kind."""
    if isinstance(error, (gax_exceptions.DeadlineExceeded, gax_exceptions.ServiceUnavailable)):
        return "network"
    if isinstance(error, (gax_exceptions.PermissionDenied, gax_exceptions.Unauthenticated)):
        return "service-not-allowed"
    return "unknown"


class GoogleStreamingEngine(AbstractRecognitionEngine):
    """One streaming_recognize call fed from the pub/sub audio topic.

    The stream runs on its own thread; callbacks are marshalled back onto
    the session's event loop. The API closes a stream after roughly five
    minutes, which surfaces here as a plain end.
    """

    def __init__(self,
                 client: speech.SpeechClient,
                 loop,
                 audio_topic: str = "audio.frame",
                 sample_rate: int = 16000,
                 model: str = "latest_long",
                 default_language: str = "en-US",
                 enable_automatic_punctuation: bool = True):
        super().__init__()
        self.client = client
        self.loop = loop
        self.audio_topic = audio_topic
        self.sample_rate = sample_rate
        self.model = model
        self.default_language = default_language
        self.enable_automatic_punctuation = enable_automatic_punctuation

        self._audio: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._ended = False
        self._aborted = False
        self._subscribed = False
        self._results: List[RecognitionResult] = []

    def start(self) -> None:
        if self._running or self._ended:
            raise EngineStateError("Engine instance was already started")
        self._running = True
        pub.subscribe(self._on_audio, self.audio_topic)
        self._subscribed = True
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.name = "GoogleStreamingEngine"
        self._thread.start()

    def stop(self) -> None:
        if not self._running:
            raise EngineStateError("Engine is not running")
        self._close_audio()

    def abort(self) -> None:
        if not self._running:
            raise EngineStateError("Engine is not running")
        self._aborted = True
        self._close_audio()

    def _close_audio(self) -> None:
        # Called from both the loop thread (stop/abort) and the worker
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
            if self._subscribed:
                pub.unsubscribe(self._on_audio, self.audio_topic)
                self._subscribed = False
        self._audio.put(None)

    def _on_audio(self, event: AudioEvent) -> None:
        if not self._closed.is_set():
            self._audio.put(event.audio_data)

    def _requests(self) -> Iterator[speech.StreamingRecognizeRequest]:
        while True:
            chunk = self._audio.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _streaming_config(self) -> speech.StreamingRecognitionConfig:
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=self.lang or self.default_language,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            model=self.model,
        )
        return speech.StreamingRecognitionConfig(
            config=config,
            interim_results=self.interim_results,
            single_utterance=not self.continuous,
        )

    def _dispatch(self, slot: str, event) -> None:
        handler = getattr(self, slot)
        if handler is None:
            return
        try:
            self.loop.call_soon_threadsafe(handler, event)
        except RuntimeError as e:
            # Loop already closed; nobody is left to receive the event
            logger.debug(f"Dropping {slot} after loop shutdown: {e}")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread. Returns True once it has exited."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        """Worker thread: run the stream until audio closes or the API ends it."""
        self._dispatch("onstart", EngineStarted())
        try:
            responses = self.client.streaming_recognize(
                config=self._streaming_config(),
                requests=self._requests(),
            )
            for response in responses:
                if self._aborted:
                    break
                self._on_response(response)
        except gax_exceptions.OutOfRange as e:
            logger.info(f"Stream limit reached: {e}")
        except gax_exceptions.GoogleAPICallError as e:
            if not self._aborted:
                logger.error(f"Google STT streaming error: {e}")
                self._dispatch("onerror", EngineError(error=map_api_error(e), message=str(e)))
        finally:
            self._running = False
            self._ended = True
            self._close_audio()
            if self._aborted:
                self._dispatch("onerror", EngineError(error="aborted"))
            self._dispatch("onend", EngineEnded())

    def _on_response(self, response: speech.StreamingRecognizeResponse) -> None:
        if not response.results:
            return

        # Interim entries are superseded by whatever the next response carries
        while self._results and not self._results[-1].is_final:
            self._results.pop()
        first_new = len(self._results)

        interim_parts = []
        for result in response.results:
            if not result.alternatives:
                continue
            alternative = result.alternatives[0]
            if result.is_final:
                self._results.append(RecognitionResult(
                    transcript=alternative.transcript,
                    is_final=True,
                    confidence=alternative.confidence or None,
                ))
            else:
                interim_parts.append(alternative.transcript.strip())

        if interim_parts:
            self._results.append(RecognitionResult(transcript=" ".join(interim_parts), is_final=False))

        logger.debug(f"Response with {len(response.results)} results, first new index {first_new}")
        self._dispatch("onresult", EngineResult(result_index=first_new, results=tuple(self._results)))


class GoogleEngineFactory(AbstractEngineFactory):
    """Creates streaming engines that share one authenticated client."""

    def __init__(self,
                 credentials_path: Optional[str],
                 loop,
                 audio_topic: str = "audio.frame",
                 sample_rate: int = 16000,
                 model: str = "latest_long"):
        self.credentials_path = credentials_path
        self.loop = loop
        self.audio_topic = audio_topic
        self.sample_rate = sample_rate
        self.model = model
        self.client: Optional[speech.SpeechClient] = None
        self.engines: List[GoogleStreamingEngine] = []

    def join_engines(self, timeout: float = 2.0) -> None:
        """Wait for every engine's worker thread, sharing one timeout."""
        deadline = time.monotonic() + timeout
        for engine in self.engines:
            if not engine.join(max(0.0, deadline - time.monotonic())):
                logger.warning("Streaming worker still running at shutdown")

    def is_supported(self) -> bool:
        return bool(self.credentials_path) and Path(self.credentials_path).exists()

    def create(self) -> GoogleStreamingEngine:
        if self.client is None:
            logger.info(f"Loading Google credentials from: {self.credentials_path}")
            try:
                credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
            except (OSError, ValueError) as e:
                raise EngineUnavailableError(f"Cannot load Google credentials: {e}") from e
            self.client = speech.SpeechClient(credentials=credentials)
            logger.info(f"Using Google Cloud project: {credentials.project_id}")

        engine = GoogleStreamingEngine(
            client=self.client,
            loop=self.loop,
            audio_topic=self.audio_topic,
            sample_rate=self.sample_rate,
            model=self.model,
        )
        self.engines.append(engine)
        return engine
