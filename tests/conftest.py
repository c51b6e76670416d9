"""Pytest configuration and fixtures for stitchscribe tests."""

import io
import wave
import logging
import tempfile

import numpy as np
import pytest
from pubsub import pub

from stitchscribe.models.events import EngineEnded, EngineError, EngineResult, EngineStarted
from stitchscribe.models.transcription import RecognitionResult
from stitchscribe.services.session_manager import SessionManager
from stitchscribe.transcription.base import (
    AbstractEngineFactory,
    AbstractRecognitionEngine,
    EngineStateError,
    EngineUnavailableError,
)
from stitchscribe.transcription.profiles import PROFILES


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")


class FakeHandle:
    def __init__(self, when, seq, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Deterministic stand-in for an asyncio loop: time only moves on advance()."""

    def __init__(self):
        self.now = 0.0
        self._scheduled = []
        self._seq = 0

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.now + delay, self._seq, callback, args)
        self._seq += 1
        self._scheduled.append(handle)
        return handle

    def call_soon(self, callback, *args):
        return self.call_later(0, callback, *args)

    call_soon_threadsafe = call_soon

    def pending(self):
        return [h for h in self._scheduled if not h.cancelled]

    def advance(self, seconds=0.0):
        """Run every callback due within ``seconds``, in time order."""
        target = self.now + seconds
        while True:
            due = [h for h in self._scheduled if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._scheduled.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self.now = target
        self._scheduled = self.pending()


class FakeEngine(AbstractRecognitionEngine):
    """Scriptable engine. Keeps a browser-style cumulative result list."""

    def __init__(self, auto_start=True):
        super().__init__()
        self.auto_start = auto_start
        self.end_on_stop = True
        self.running = False
        self.ended = False
        self.stop_calls = 0
        self.abort_calls = 0
        self.results = []

    def start(self):
        if self.running or self.ended:
            raise EngineStateError("already started")
        self.running = True
        if self.auto_start:
            self.emit_start()

    def stop(self):
        if not self.running:
            raise EngineStateError("not running")
        self.stop_calls += 1
        if self.end_on_stop:
            self.emit_end()

    def abort(self):
        if not self.running:
            raise EngineStateError("not running")
        self.abort_calls += 1
        self.emit_error("aborted")
        self.emit_end()

    def emit_start(self):
        self.onstart(EngineStarted())

    def emit_final(self, text):
        self._push(RecognitionResult(transcript=text, is_final=True))

    def emit_interim(self, text):
        self._push(RecognitionResult(transcript=text, is_final=False))

    def _push(self, result):
        while self.results and not self.results[-1].is_final:
            self.results.pop()
        index = len(self.results)
        self.results.append(result)
        self.onresult(EngineResult(result_index=index, results=tuple(self.results)))

    def emit_error(self, kind):
        self.onerror(EngineError(error=kind))

    def emit_end(self):
        self.running = False
        self.ended = True
        self.onend(EngineEnded())


class FakeEngineFactory(AbstractEngineFactory):
    def __init__(self, supported=True, auto_start=True):
        self.supported = supported
        self.auto_start = auto_start
        self.fail_creates = 0
        self.engines = []

    def is_supported(self):
        return self.supported

    def create(self):
        if self.fail_creates > 0:
            self.fail_creates -= 1
            raise EngineUnavailableError("engine construction failed")
        engine = FakeEngine(auto_start=self.auto_start)
        self.engines.append(engine)
        return engine

    @property
    def latest(self):
        return self.engines[-1]


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop pub/sub listeners registered by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def engine_factory():
    return FakeEngineFactory()


@pytest.fixture
def make_manager(fake_loop, engine_factory):
    """Build a SessionManager on the fake loop; profile defaults to chrome."""
    def build(profile="chrome", **kwargs):
        kwargs.setdefault("loop", fake_loop)
        return SessionManager(engine_factory, PROFILES[profile], **kwargs)
    return build


@pytest.fixture
def manager(make_manager):
    return make_manager()


def tone(duration_s, amplitude, sample_rate=16000, freq=440.0):
    """Sine samples in [-1, 1]."""
    t = np.arange(int(duration_s * sample_rate)) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq * t)


def to_wav_bytes(samples, sample_rate=16000, channels=1):
    """Encode float samples (frames,) or (frames, channels) as 16-bit WAV."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype('<i2')
    buf = io.BytesIO()
    with wave.open(buf, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


@pytest.fixture
def make_wav():
    """Build a mono WAV from (duration_s, amplitude) segments; amplitude 0 is silence."""
    def build(*segments, sample_rate=16000):
        parts = [tone(duration, amplitude, sample_rate) for duration, amplitude in segments]
        return to_wav_bytes(np.concatenate(parts), sample_rate)
    return build


def wav_duration(blob):
    with wave.open(io.BytesIO(blob), 'rb') as wf:
        return wf.getnframes() / wf.getframerate()
