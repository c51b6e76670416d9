"""YAML configuration loader for stitchscribe."""

import os
import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
import logging

from ..models.audio import TrimConfig
from ..models.session import SessionLimits, WatchdogSettings
from ..transcription.profiles import EngineProfile, detect_profile, get_profile

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "chunk_size": 1024,
        "channels": 1,
        "topic": "audio.frame",
    },
    "recognition": {
        "profile": "google-cloud",
        "user_agent": None,
        "accent": "en-US",
        "model": "latest_long",
        "topic": "capture.session",
    },
    "profiles": {},
    "session": {
        "max_transient_retries": 3,
        "max_consecutive_failures": 10,
        "stop_grace_s": 0.15,
        "silence_timeout_s": 10.0,
        "accent_restart_delay_s": 0.3,
    },
    "watchdog": {
        "interval_s": 2.0,
        "silence_ceiling_s": 12.0,
        "warmup_s": 5.0,
    },
    "pauses": {
        "pause_threshold_s": 1.0,
        "long_pause_threshold_s": 3.0,
    },
    "trim": {},
    "google_cloud": {
        "credentials_path": None,
    },
    "storage": {
        "data_directory": "data",
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/stitchscribe.log",
        "console_output": True,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class StitchscribeConfig:
    """stitchscribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and relative paths resolve against the
                        current directory.
        """
        if config_path is None:
            self.config_file = None
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULTS)
            return

        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _deep_merge(DEFAULTS, loaded)
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (("google_cloud", "credentials_path"),
                             ("storage", "data_directory"),
                             ("logging", "file_path")):
            path = config.get(section, {}).get(key)
            if path and not os.path.isabs(path):
                config[section][key] = str(config_dir / path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'recognition.profile').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'recognition.accent')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_profile(self) -> EngineProfile:
        """Resolve the engine profile, with per-profile overrides applied.

        An explicit ``recognition.user_agent`` takes precedence over
        ``recognition.profile``.
        """
        user_agent = self.get('recognition.user_agent')
        if user_agent:
            name = detect_profile(user_agent).name
        else:
            name = self.get('recognition.profile', 'google-cloud')
        overrides = self.get(f'profiles.{name}') or {}
        return get_profile(name, overrides)

    def get_session_limits(self) -> SessionLimits:
        return self._build(SessionLimits, 'session')

    def get_watchdog_settings(self) -> WatchdogSettings:
        return self._build(WatchdogSettings, 'watchdog')

    def get_trim_config(self) -> TrimConfig:
        return TrimConfig.from_dict(self.get('trim') or {})

    def get_pause_thresholds(self) -> Tuple[float, float]:
        """Returns (pause_threshold_s, long_pause_threshold_s)."""
        return (float(self.get('pauses.pause_threshold_s', 1.0)),
                float(self.get('pauses.long_pause_threshold_s', 3.0)))

    def _build(self, cls, section: str):
        try:
            return cls(**(self.get(section) or {}))
        except TypeError as e:
            raise ValueError(f"Invalid '{section}' configuration: {e}") from e

    def get_google_credentials_path(self) -> str:
        """Get Google credentials path - raises if not configured or missing."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ValueError("Google credentials path not configured (google_cloud.credentials_path)")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())
