"""Unit tests for engine profiles and error classification."""

import pytest

from stitchscribe.services.failures import (
    ErrorDisposition,
    RecognitionFatalError,
    classify_error,
)
from stitchscribe.transcription.profiles import PROFILES, detect_profile, get_profile


CHROME_UA = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
             "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36")
EDGE_UA = CHROME_UA + " Edg/120.0.2210.91"
FIREFOX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


@pytest.mark.unit
class TestProfiles:

    def test_builtin_timings(self):
        assert (PROFILES["chrome"].max_session_s, PROFILES["chrome"].restart_delay_s) == (35.0, 0.2)
        assert (PROFILES["edge"].max_session_s, PROFILES["edge"].restart_delay_s) == (45.0, 0.3)
        assert (PROFILES["generic"].max_session_s, PROFILES["generic"].restart_delay_s) == (45.0, 0.2)
        assert PROFILES["google-cloud"].max_session_s < 305.0

    def test_edge_quirks(self):
        edge = PROFILES["edge"]
        assert not edge.sets_language_hint
        assert "network" in edge.extra_restartable_errors

    def test_detect_profile(self):
        assert detect_profile(EDGE_UA).name == "edge"
        assert detect_profile(CHROME_UA).name == "chrome"
        assert detect_profile(FIREFOX_UA).name == "generic"
        assert detect_profile("Chromium/119 Linux").name == "chrome"

    def test_get_profile_with_overrides(self):
        profile = get_profile("chrome", {"max_session_s": 20, "extra_restartable_errors": ["bad-grammar"]})

        assert profile.max_session_s == 20
        assert profile.restart_delay_s == 0.2
        assert profile.extra_restartable_errors == frozenset({"bad-grammar"})
        # Built-in table untouched
        assert PROFILES["chrome"].max_session_s == 35.0

    def test_get_profile_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown engine profile"):
            get_profile("netscape")

    def test_get_profile_unknown_override(self):
        with pytest.raises(ValueError, match="Invalid override"):
            get_profile("chrome", {"max_sesion_s": 10})


@pytest.mark.unit
class TestClassifyError:

    @pytest.mark.parametrize("kind", ["no-speech", "aborted"])
    def test_ignored(self, kind):
        assert classify_error(kind, PROFILES["chrome"]) is ErrorDisposition.IGNORE

    @pytest.mark.parametrize("kind", ["network", "audio-capture", "service-not-allowed"])
    def test_restartable(self, kind):
        assert classify_error(kind, PROFILES["chrome"]) is ErrorDisposition.RESTART

    @pytest.mark.parametrize("kind", ["not-allowed", "language-not-supported", "mystery"])
    def test_unclassified_fails(self, kind):
        assert classify_error(kind, PROFILES["chrome"]) is ErrorDisposition.FAIL

    def test_profile_extra_kinds(self):
        profile = get_profile("generic", {"extra_restartable_errors": ["bad-grammar"]})
        assert classify_error("bad-grammar", profile) is ErrorDisposition.RESTART
        assert classify_error("bad-grammar", PROFILES["generic"]) is ErrorDisposition.FAIL

    def test_fatal_error_message(self):
        error = RecognitionFatalError("network", 10)
        assert str(error) == "Speech recognition error: network"
        assert error.failures == 10
