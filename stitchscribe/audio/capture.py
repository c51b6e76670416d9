"""Microphone recording that outlives recognition engine restarts.

The capture thread never talks to an engine directly. Each chunk goes to a
callback (an ``AudioPublisher`` in the CLI) and into an in-memory recording
that is trimmed and saved once the session ends.
"""

import io
import time
import wave
import logging
from contextlib import contextmanager
from threading import Thread, Event, Lock
from typing import Callable, Iterator, List, Optional

import pyaudio

from ..models.audio import AudioStats
from ..models.events import AudioEvent

logger = logging.getLogger(__name__)


class AudioCapture:
    """Reads fixed-size chunks from the default input device on a daemon thread."""

    def __init__(
        self,
        callback: Callable[[AudioEvent], None],
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Set up capture without touching the audio device.

        Args:
            callback: Receives every AudioEvent, on the capture thread
            sample_rate: Input rate in Hz
            chunk_size: Frames per read
            channels: Input channel count
            format: pyaudio sample format
        """
        self.audio_event_callback = callback
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        self.audio_data: List[bytes] = []
        self.data_lock = Lock()

        self.total_chunks = 0
        self._started_at: Optional[float] = None

    def start_recording(self) -> None:
        if self.is_recording:
            logger.warning("start_recording called while already recording")
            return

        self.stop_event.clear()
        self.total_chunks = 0
        self._started_at = time.monotonic()
        with self.data_lock:
            self.audio_data = []

        self.recording_thread = Thread(
            target=self._record_continuously, name="AudioCaptureThread", daemon=True
        )
        self.recording_thread.start()
        self.is_recording = True
        logger.info(f"Recording started: {self.sample_rate}Hz, {self.channels} channel(s)")

    def stop_recording(self) -> None:
        """Ask the capture thread to finish and wait up to two seconds for it."""
        if not self.is_recording:
            logger.warning("stop_recording called with no recording in progress")
            return

        self.stop_event.set()
        thread = self.recording_thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=2.0)
            if thread.is_alive():
                logger.warning("Capture thread still alive after stop request")

        self.is_recording = False
        logger.info(f"Recording stopped after {self.total_chunks} chunks")

    @contextmanager
    def _input_stream(self) -> Iterator[pyaudio.Stream]:
        audio = pyaudio.PyAudio()
        stream = None
        try:
            stream = audio.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
            )
            logger.debug(f"Input stream open, {self.chunk_size} frames per read")
            yield stream
        finally:
            if stream is not None:
                stream.stop_stream()
                stream.close()
            audio.terminate()

    def _capture_chunk(self, stream: pyaudio.Stream, final: bool) -> None:
        chunk = stream.read(self.chunk_size, exception_on_overflow=False)
        self.total_chunks += 1
        with self.data_lock:
            self.audio_data.append(chunk)

        self.audio_event_callback(AudioEvent(
            chunk_id=f"chunk_{self.total_chunks}",
            audio_data=chunk,
            timestamp=time.time(),
            sequence_number=self.total_chunks,
            sample_rate=self.sample_rate,
            channels=self.channels,
            final=final,
        ))

    def _record_continuously(self) -> None:
        try:
            with self._input_stream() as stream:
                while not self.stop_event.is_set():
                    self._capture_chunk(stream, final=False)
                # One more read, flagged final, so subscribers see the end
                self._capture_chunk(stream, final=True)
        except OSError as e:
            logger.error(f"Audio capture failed: {e}")

    def to_wav_bytes(self) -> bytes:
        """The recording so far, as a WAV file in memory."""
        with self.data_lock:
            pcm = b"".join(self.audio_data)

        buf = io.BytesIO()
        with wave.open(buf, 'wb') as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(pyaudio.get_sample_size(self.format))
            wf.setframerate(self.sample_rate)
            wf.writeframes(pcm)
        return buf.getvalue()

    def get_recording_stats(self) -> AudioStats:
        elapsed = 0.0
        if self._started_at is not None:
            elapsed = time.monotonic() - self._started_at

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=elapsed,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
        )
