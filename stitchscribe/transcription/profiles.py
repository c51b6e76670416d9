"""Engine profile table: timing ceilings and quirks per recognition engine."""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, FrozenSet, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineProfile:
    """Per-engine constants, selected once when a session is created."""
    name: str
    max_session_s: float            # proactive restart ceiling for one engine instance
    restart_delay_s: float          # wait after `end` before re-creating the engine
    sets_language_hint: bool = True
    accent_sensitive: bool = False  # accent changes need a restart to take effect
    extra_restartable_errors: FrozenSet[str] = frozenset()


PROFILES: Dict[str, EngineProfile] = {
    # Chrome cuts sessions off around 45s
    "chrome": EngineProfile(
        name="chrome",
        max_session_s=35.0,
        restart_delay_s=0.2,
        sets_language_hint=True,
        accent_sensitive=True,
    ),
    # Edge auto-detects language, delivers late results and fires spurious network errors
    "edge": EngineProfile(
        name="edge",
        max_session_s=45.0,
        restart_delay_s=0.3,
        sets_language_hint=False,
        extra_restartable_errors=frozenset({"network"}),
    ),
    "generic": EngineProfile(
        name="generic",
        max_session_s=45.0,
        restart_delay_s=0.2,
    ),
    # Cloud streaming recognition closes the stream at ~305s
    "google-cloud": EngineProfile(
        name="google-cloud",
        max_session_s=290.0,
        restart_delay_s=0.2,
        accent_sensitive=True,
    ),
}

_EDGE = re.compile(r"Edg/")
_CHROME = re.compile(r"Chrome|Chromium")


def detect_profile(user_agent: str) -> EngineProfile:
    """Pick a browser profile from a user agent string."""
    if _EDGE.search(user_agent):
        return PROFILES["edge"]
    if _CHROME.search(user_agent):
        return PROFILES["chrome"]
    return PROFILES["generic"]


def get_profile(name: str, overrides: Optional[Mapping[str, Any]] = None) -> EngineProfile:
    """Look up a profile by name and apply configuration overrides.

    Raises:
        ValueError: if the profile name or an override key is unknown
    """
    if name not in PROFILES:
        raise ValueError(f"Unknown engine profile: {name} (known: {', '.join(sorted(PROFILES))})")

    profile = PROFILES[name]
    if not overrides:
        return profile

    values = dict(overrides)
    if "extra_restartable_errors" in values:
        values["extra_restartable_errors"] = frozenset(values["extra_restartable_errors"])
    try:
        profile = replace(profile, **values)
    except TypeError as e:
        raise ValueError(f"Invalid override for profile {name}: {e}") from e

    logger.debug(f"Profile {name} with overrides: {profile}")
    return profile
