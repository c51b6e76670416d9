"""Energy-based silence trimming for recorded speech.

Leading silence is cut at the first window loud enough to be speech. The
end of speech is found with a lower threshold, so quiet endings are not
clipped, and a fixed padding is always kept after it. Trimming is
best-effort: any failure hands back the original audio.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping, Tuple, Union

import numpy as np

from ..models.audio import TrimConfig, TrimResult
from .wav_codec import decode_wav, encode_wav, to_mono

logger = logging.getLogger(__name__)

# A window this much quieter than the one after it is treated as fading speech
DECRESCENDO_DROP = 0.8
# ...as long as it stays above this share of the end threshold
DECRESCENDO_FLOOR = 0.3

ConfigLike = Union[TrimConfig, Mapping[str, Any], None]


def _window_samples(sample_rate: int, config: TrimConfig) -> int:
    return max(1, int(sample_rate * config.window_size))


def compute_rms(samples: np.ndarray, start: int, length: int) -> float:
    """RMS of ``samples[start:start + length]``; 0.0 for an empty slice."""
    window = samples[start:start + length]
    if window.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(window, dtype=np.float64))))


def find_speech_start(samples: np.ndarray, sample_rate: int, config: TrimConfig) -> int:
    """Return the sample index where speech begins.

    Only trims when at least ``min_silence_duration`` of silence precedes the
    first loud window, backs off half a window to keep the onset, and never
    trims more than ``max_leading_trim``.
    """
    window = _window_samples(sample_rate, config)
    max_trim = int(sample_rate * config.max_leading_trim)
    min_silence = int(sample_rate * config.min_silence_duration)

    silent = 0
    for i in range(0, min(len(samples), max_trim), window):
        if compute_rms(samples, i, window) >= config.silence_threshold:
            if silent >= min_silence:
                return max(0, i - window // 2)
            return 0
        silent += window

    if silent >= min_silence:
        return min(silent, max_trim)
    return 0


def find_speech_end(samples: np.ndarray, sample_rate: int, config: TrimConfig) -> int:
    """Return the sample index (exclusive) where trailing silence begins.

    Scans backward with the lower end threshold. A window that is quieter
    than the one after it by more than 20% but still above 30% of the end
    threshold is fading speech, not silence. Once a silence run of at least
    ``min_silence_duration`` is confirmed, ``trailing_padding`` is kept after
    the last speech window. A run longer than ``max_trailing_trim`` is
    trimmed by ``max_trailing_trim`` only.
    """
    total = len(samples)
    window = _window_samples(sample_rate, config)
    min_silence = int(sample_rate * config.min_silence_duration)
    max_trim = int(sample_rate * config.max_trailing_trim)
    padding = int(sample_rate * config.trailing_padding)
    end_threshold = config.end_threshold

    silent = 0
    previous_rms = 0.0
    for i in range(total - window, -1, -window):
        if silent > max_trim:
            return max(0, total - max_trim)

        rms = compute_rms(samples, i, window)
        is_decrescendo = (
            previous_rms > 0 and rms > 0
            and rms < previous_rms * DECRESCENDO_DROP
            and rms > end_threshold * DECRESCENDO_FLOOR
        )

        if rms >= end_threshold or is_decrescendo:
            if silent >= min_silence:
                logger.debug(f"Speech end detected at {i / sample_rate:.2f}s, "
                             f"adding {config.trailing_padding}s padding")
                return min(total, i + window + padding)
            return total

        previous_rms = rms
        silent += window

    return total


def _resolve_config(config: ConfigLike) -> TrimConfig:
    if isinstance(config, TrimConfig):
        return config
    return TrimConfig.from_dict(config or {})


def trim_silence(blob: bytes, config: ConfigLike = None) -> TrimResult:
    """Trim leading (and optionally trailing) silence from WAV audio.

    Args:
        blob: Encoded audio
        config: TrimConfig or a mapping of trim options

    Returns:
        TrimResult; the original blob with zero trim when nothing should be
        trimmed, the result would be shorter than ``min_audio_duration``, or
        anything fails
    """
    untouched = TrimResult(blob=blob, trimmed_leading_ms=0, trimmed_trailing_ms=0)

    try:
        cfg = _resolve_config(config)
        audio = decode_wav(blob)
        samples = to_mono(audio.samples)
        sample_rate = audio.sample_rate
        total = len(samples)

        speech_start = find_speech_start(samples, sample_rate, cfg)
        speech_end = find_speech_end(samples, sample_rate, cfg) if cfg.trim_trailing else total

        kept = speech_end - speech_start
        if kept < int(sample_rate * cfg.min_audio_duration):
            logger.info(f"Would trim to {kept / sample_rate:.2f}s, below minimum "
                        f"{cfg.min_audio_duration}s - skipping trim")
            return untouched

        if speech_start == 0 and speech_end == total:
            return untouched

        trimmed_leading_ms = int(speech_start * 1000 / sample_rate + 0.5)
        trimmed_trailing_ms = max(0, int((total - speech_end) * 1000 / sample_rate + 0.5))

        logger.info(f"Trimming: {trimmed_leading_ms}ms leading, {trimmed_trailing_ms}ms trailing "
                    f"({total * 1000 / sample_rate:.0f}ms -> {kept * 1000 / sample_rate:.0f}ms)")

        trimmed = encode_wav(audio.samples[speech_start:speech_end], sample_rate)
        return TrimResult(
            blob=trimmed,
            trimmed_leading_ms=trimmed_leading_ms,
            trimmed_trailing_ms=trimmed_trailing_ms,
        )
    except Exception as e:
        logger.warning(f"Failed to trim silence: {e}")
        return untouched


def trim_leading_silence(blob: bytes, config: ConfigLike = None) -> Tuple[bytes, int]:
    """Trim leading silence only.

    Returns:
        (blob, trimmed_ms)
    """
    if isinstance(config, TrimConfig):
        options: ConfigLike = replace(config, trim_trailing=False)
    else:
        options = {**(config or {}), "trim_trailing": False}
    result = trim_silence(blob, options)
    return result.blob, result.trimmed_leading_ms


def trim_silence_file(src: Union[str, Path], dst: Union[str, Path],
                      config: ConfigLike = None) -> TrimResult:
    """Trim a WAV file and write the result (trimmed or not) to ``dst``."""
    result = trim_silence(Path(src).read_bytes(), config)
    Path(dst).write_bytes(result.blob)
    logger.info(f"Wrote {dst} ({result.trimmed_leading_ms}ms leading, "
                f"{result.trimmed_trailing_ms}ms trailing trimmed)")
    return result
