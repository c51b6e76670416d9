"""Audio-related data models."""

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping

import numpy as np


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int


@dataclass
class DecodedAudio:
    """PCM samples scaled to [-1, 1], shaped (frames, channels)."""
    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return self.samples.shape[1]

    @property
    def frame_count(self) -> int:
        return self.samples.shape[0]


# camelCase option names accepted by TrimConfig.from_dict
_CAMEL_ALIASES = {
    "silenceThreshold": "silence_threshold",
    "endThresholdMultiplier": "end_threshold_multiplier",
    "windowSize": "window_size",
    "minSilenceDuration": "min_silence_duration",
    "trimTrailing": "trim_trailing",
    "maxLeadingTrim": "max_leading_trim",
    "maxTrailingTrim": "max_trailing_trim",
    "trailingPadding": "trailing_padding",
    "minAudioDuration": "min_audio_duration",
}


@dataclass(frozen=True)
class TrimConfig:
    """Silence trimming options. Durations are in seconds."""
    silence_threshold: float = 0.01       # RMS floor for speech onset
    end_threshold_multiplier: float = 0.6  # lower threshold for speech end
    window_size: float = 0.05
    min_silence_duration: float = 0.2
    trim_trailing: bool = False
    max_leading_trim: float = 3.0
    max_trailing_trim: float = 8.0
    trailing_padding: float = 0.35        # always kept after detected speech end
    min_audio_duration: float = 1.0       # never trim below this

    def __post_init__(self):
        if self.window_size <= 0:
            raise ValueError(f"window_size must be positive, got {self.window_size}")
        if self.silence_threshold < 0:
            raise ValueError(f"silence_threshold must be >= 0, got {self.silence_threshold}")

    @property
    def end_threshold(self) -> float:
        return self.silence_threshold * self.end_threshold_multiplier

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "TrimConfig":
        """Build a config from snake_case or camelCase option names.

        Raises:
            ValueError: on an unrecognized option name or a value of the wrong type
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            name = _CAMEL_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown trim option: {key}")
            if name == "trim_trailing":
                if not isinstance(value, bool):
                    raise ValueError(f"Trim option {key} must be true or false, got {value!r}")
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Trim option {key} must be a number, got {value!r}")
            else:
                value = float(value)
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class TrimResult:
    blob: bytes
    trimmed_leading_ms: int
    trimmed_trailing_ms: int
