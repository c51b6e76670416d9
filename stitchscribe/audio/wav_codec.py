"""WAV decoding to float samples and 16-bit PCM re-encoding."""

import io
import logging
import wave

import numpy as np

from ..models.audio import DecodedAudio

logger = logging.getLogger(__name__)


def _pcm_to_float(frames: bytes, sample_width: int) -> np.ndarray:
    if sample_width == 1:
        # 8-bit WAV is unsigned
        return (np.frombuffer(frames, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    if sample_width == 2:
        return np.frombuffer(frames, dtype="<i2").astype(np.float32) / 32768.0
    if sample_width == 3:
        raw = np.frombuffer(frames, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        values = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
        values = np.where(values & 0x800000, values - 0x1000000, values)
        return values.astype(np.float32) / 8388608.0
    if sample_width == 4:
        return np.frombuffer(frames, dtype="<i4").astype(np.float32) / 2147483648.0
    raise ValueError(f"Unsupported sample width: {sample_width} bytes")


def decode_wav(data: bytes) -> DecodedAudio:
    """Decode PCM WAV bytes.

    Raises:
        wave.Error, EOFError, ValueError: if the data is not decodable PCM WAV
    """
    with wave.open(io.BytesIO(data), "rb") as wf:
        channels = wf.getnchannels()
        sample_width = wf.getsampwidth()
        sample_rate = wf.getframerate()
        frames = wf.readframes(wf.getnframes())

    samples = _pcm_to_float(frames, sample_width)
    usable = len(samples) - len(samples) % channels
    samples = samples[:usable].reshape(-1, channels)

    logger.debug(f"Decoded WAV: {samples.shape[0]} frames, {channels} channels, {sample_rate}Hz")
    return DecodedAudio(samples=samples, sample_rate=sample_rate)


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Downmix (frames, channels) samples by averaging the channels."""
    if samples.ndim == 1:
        return samples
    if samples.shape[1] == 1:
        return samples[:, 0]
    return samples.mean(axis=1)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float samples in [-1, 1] as 16-bit PCM WAV."""
    if samples.ndim == 1:
        samples = samples.reshape(-1, 1)

    clipped = np.clip(samples, -1.0, 1.0)
    pcm = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0).astype("<i2")

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(samples.shape[1])
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()
