"""Unit tests for SessionManager."""

import pytest
from pubsub import pub

from stitchscribe.models.session import SessionState
from stitchscribe.transcription.publisher import SessionPublisher


class EventCollector:
    def __init__(self, topic="capture.session"):
        self.events = []
        pub.subscribe(self.on_event, topic)

    def on_event(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def collector():
    return EventCollector()


@pytest.fixture
def published_manager(make_manager, collector):
    return make_manager(publisher=SessionPublisher())


def restart_via_end(manager, engine_factory, fake_loop):
    """End the current engine and let the re-creation timer fire."""
    engine_factory.latest.emit_end()
    fake_loop.advance(manager.profile.restart_delay_s)
    return engine_factory.latest


@pytest.mark.unit
class TestStart:

    def test_start_creates_configured_engine(self, manager, engine_factory):
        manager.start()

        engine = engine_factory.latest
        assert manager.state is SessionState.LISTENING
        assert manager.is_listening
        assert engine.continuous is True
        assert engine.interim_results is True
        assert engine.lang == "en-US"
        assert manager.session.is_recording

    def test_profile_without_language_hint(self, make_manager, engine_factory):
        manager = make_manager("edge", accent="fr-FR")
        manager.start()

        assert engine_factory.latest.lang is None

    def test_starting_until_engine_reports(self, manager, engine_factory):
        engine_factory.auto_start = False
        manager.start()
        assert manager.state is SessionState.STARTING
        assert not manager.is_listening

        engine_factory.latest.emit_start()
        assert manager.state is SessionState.LISTENING

    def test_start_while_active_is_refused(self, manager, engine_factory):
        manager.start()
        manager.start()

        assert len(engine_factory.engines) == 1

    def test_unsupported(self, published_manager, engine_factory, collector):
        engine_factory.supported = False
        published_manager.start()

        assert published_manager.state is SessionState.ERROR
        assert published_manager.error == "Speech recognition not supported"
        assert engine_factory.engines == []
        assert len(collector.of_type("error")) == 1

    def test_engine_construction_failure(self, manager, engine_factory):
        engine_factory.fail_creates = 1
        manager.start()

        assert manager.state is SessionState.ERROR
        assert manager.error.startswith("Failed to start speech recognition")

    def test_start_after_stop_begins_fresh(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_final("first session")
        manager.stop()
        fake_loop.advance(0.15)

        manager.start()

        assert manager.final_transcript == ""
        assert manager.session.session_id == 2
        assert manager.restart_count == 0
        assert len(engine_factory.engines) == 2


@pytest.mark.unit
class TestResults:

    def test_finals_and_interims(self, manager, engine_factory):
        manager.start()
        engine = engine_factory.latest

        engine.emit_interim("hello th")
        assert manager.interim_transcript == "hello th"
        assert manager.final_transcript == ""

        engine.emit_final("hello there")
        engine.emit_interim("how are")
        assert manager.final_transcript == "hello there"
        assert manager.interim_transcript == "how are"
        assert manager.raw_transcript == manager.final_transcript
        assert [w.text for w in manager.words] == ["hello", "there"]

    def test_fuzzy_duplicate_final_is_stored_once(self, manager, engine_factory):
        manager.start()
        engine = engine_factory.latest

        engine.emit_final("yes i agree")
        engine.emit_final("Yes, I agree.")

        assert manager.final_transcript == "yes i agree"
        assert len(manager.words) == 3

    def test_result_counts_as_speech_event(self, manager, engine_factory, fake_loop):
        manager.start()
        fake_loop.advance(1.5)
        engine_factory.latest.emit_interim("hi")
        manager.stop()
        fake_loop.advance(0.15)

        metrics = manager.pause_metrics
        assert metrics.speech_event_count == 1
        assert metrics.pause_count == 1

    def test_ghost_words_are_empty(self, manager, engine_factory):
        manager.start()
        engine_factory.latest.emit_final("hello")

        assert manager.ghost_words == ()
        assert manager.snapshot().ghost_words == ()


@pytest.mark.unit
class TestRestarts:

    def test_unexpected_end_recreates_engine(self, manager, engine_factory, fake_loop):
        manager.start()
        first = engine_factory.latest
        first.emit_end()

        assert manager.state is SessionState.RESTARTING
        fake_loop.advance(0.1)
        assert len(engine_factory.engines) == 1

        fake_loop.advance(0.1)
        second = engine_factory.latest
        assert second is not first
        assert manager.state is SessionState.LISTENING
        assert manager.restart_count == 1

    def test_overlap_across_restart_is_trimmed(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_final("I think it's important")

        second = restart_via_end(manager, engine_factory, fake_loop)
        second.emit_final("it's important to consider")

        assert manager.final_transcript == "I think it's important to consider"

    def test_boundary_repeated_after_restart_is_dropped(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_final("okay")

        second = restart_via_end(manager, engine_factory, fake_loop)
        second.emit_final("Okay.")
        second.emit_final("let's go")

        assert manager.final_transcript == "okay let's go"

    def test_final_inside_previous_tail_is_dropped(self, manager, engine_factory):
        manager.start()
        engine = engine_factory.latest
        engine.emit_final("that sounds good")
        engine.emit_final("sounds good")

        assert manager.final_transcript == "that sounds good"
        assert [w.text for w in manager.words] == ["that", "sounds", "good"]

    def test_interim_is_flushed_when_engine_ends(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_final("we spoke")
        engine_factory.latest.emit_interim("about the plan")

        second = restart_via_end(manager, engine_factory, fake_loop)
        second.emit_final("and then left")

        assert manager.final_transcript == "we spoke about the plan and then left"

    def test_events_from_retired_engine_are_dropped(self, manager, engine_factory, fake_loop):
        manager.start()
        first = engine_factory.latest
        restart_via_end(manager, engine_factory, fake_loop)

        first.emit_final("stale words")
        first.emit_end()

        assert manager.final_transcript == ""
        assert len(engine_factory.engines) == 2
        assert manager.state is SessionState.LISTENING

    def test_restart_survives_many_cycles(self, manager, engine_factory, fake_loop):
        manager.start()
        for i in range(20):
            engine_factory.latest.emit_final(f"segment{i}")
            restart_via_end(manager, engine_factory, fake_loop)

        assert manager.restart_count == 20
        assert manager.final_transcript.split() == [f"segment{i}" for i in range(20)]

    def test_safe_restart_stops_and_recreates(self, manager, engine_factory, fake_loop):
        manager.start()
        first = engine_factory.latest

        manager.safe_restart("test")
        assert first.stop_calls == 1
        assert manager.state is SessionState.RESTARTING

        manager.safe_restart("again")
        assert first.stop_calls == 1

        fake_loop.advance(0.2)
        assert engine_factory.latest is not first
        assert manager.state is SessionState.LISTENING

    def test_safe_restart_waits_for_end_event(self, manager, engine_factory, fake_loop):
        manager.start()
        first = engine_factory.latest
        first.end_on_stop = False

        manager.safe_restart("test")
        fake_loop.advance(1.0)
        assert len(engine_factory.engines) == 1

        first.emit_final("last words")
        first.emit_end()
        fake_loop.advance(0.2)

        assert len(engine_factory.engines) == 2
        assert manager.final_transcript == "last words"

    def test_safe_restart_ignored_when_not_recording(self, manager, engine_factory):
        manager.safe_restart("idle")

        assert engine_factory.engines == []
        assert manager.state is SessionState.IDLE

    def test_failed_recreation_is_retried(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.fail_creates = 2
        engine_factory.latest.emit_end()

        fake_loop.advance(0.2)
        fake_loop.advance(0.2)
        assert len(engine_factory.engines) == 1
        assert manager.session.consecutive_failures == 2
        assert manager.state is SessionState.RESTARTING

        fake_loop.advance(0.2)
        assert len(engine_factory.engines) == 2
        assert manager.state is SessionState.LISTENING
        assert manager.restart_count == 1

    def test_edge_uses_its_own_restart_delay(self, make_manager, engine_factory, fake_loop):
        manager = make_manager("edge")
        manager.start()
        engine_factory.latest.emit_end()

        fake_loop.advance(0.2)
        assert len(engine_factory.engines) == 1
        fake_loop.advance(0.1)
        assert len(engine_factory.engines) == 2


@pytest.mark.unit
class TestWatchdogIntegration:

    def test_wedged_engine_is_replaced(self, manager, engine_factory, fake_loop):
        manager.start()
        fake_loop.advance(14.0)

        assert engine_factory.engines[0].stop_calls == 1
        fake_loop.advance(0.2)
        assert len(engine_factory.engines) == 2
        assert manager.state is SessionState.LISTENING

    def test_proactive_restart_before_engine_cutoff(self, manager, engine_factory, fake_loop):
        manager.start()
        for i in range(17):
            fake_loop.advance(2.0)
            engine_factory.latest.emit_final(f"word{i}")
        assert len(engine_factory.engines) == 1

        fake_loop.advance(2.0)
        fake_loop.advance(0.2)

        assert len(engine_factory.engines) == 2
        assert manager.restart_count == 1
        assert len(manager.words) == 17

    def test_extended_silence_is_only_counted(self, manager, engine_factory, fake_loop):
        manager.start()
        fake_loop.advance(10.0)

        assert manager.session.extended_silences == 1
        assert len(engine_factory.engines) == 1
        assert manager.state is SessionState.LISTENING


@pytest.mark.unit
class TestErrors:

    def test_ignored_errors(self, manager, engine_factory):
        manager.start()
        engine_factory.latest.emit_error("no-speech")
        engine_factory.latest.emit_error("aborted")

        assert manager.session.consecutive_failures == 0
        assert manager.state is SessionState.LISTENING

    def test_transient_error_restarts(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_error("network")

        assert manager.state is SessionState.RESTARTING
        fake_loop.advance(0.2)
        assert len(engine_factory.engines) == 2

    def test_transient_retries_are_capped(self, manager, engine_factory, fake_loop):
        manager.start()
        for _ in range(3):
            engine_factory.latest.emit_error("network")
            fake_loop.advance(0.2)
        assert len(engine_factory.engines) == 4

        engine_factory.latest.emit_error("network")
        fake_loop.advance(0.2)

        assert len(engine_factory.engines) == 4
        assert manager.state is SessionState.LISTENING
        assert manager.session.consecutive_failures == 4

    def test_result_resets_failure_counters(self, manager, engine_factory, fake_loop):
        manager.start()
        for _ in range(3):
            engine_factory.latest.emit_error("network")
            fake_loop.advance(0.2)
        engine_factory.latest.emit_final("back again")

        assert manager.session.consecutive_failures == 0
        assert manager.session.transient_retries == 0

        engine_factory.latest.emit_error("network")
        assert manager.state is SessionState.RESTARTING

    def test_unclassified_error_is_absorbed(self, manager, engine_factory):
        manager.start()
        engine_factory.latest.emit_error("language-not-supported")

        assert manager.state is SessionState.LISTENING
        assert manager.error is None
        assert manager.session.consecutive_failures == 1

    def test_sustained_failures_surface_one_fatal_error(self, published_manager, engine_factory,
                                                        fake_loop, collector):
        manager = published_manager
        manager.start()

        for _ in range(6):
            engine_factory.latest.emit_error("network")
            fake_loop.advance(0.2)
        last = engine_factory.latest
        manager.buffer.set_interim("half a thought")
        for _ in range(4):
            last.emit_error("mystery")
        # Further errors after the fatal one are ignored
        last.emit_error("mystery")
        fake_loop.advance(5.0)

        errors = collector.of_type("error")
        assert len(errors) == 1
        assert errors[0].metadata["error"] == "Speech recognition error: mystery"
        assert manager.state is SessionState.ERROR
        assert manager.error == "Speech recognition error: mystery"
        assert manager.interim_transcript == ""
        assert last.abort_calls == 1
        assert not manager.watchdog.is_running
        assert fake_loop.pending() == []
        assert manager.pause_metrics is not None

    def test_restart_failures_reach_ceiling(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.fail_creates = 100
        engine_factory.latest.emit_end()

        fake_loop.advance(3.0)

        assert manager.state is SessionState.ERROR
        assert manager.error == "Speech recognition error: restart-failed"
        assert fake_loop.pending() == []


@pytest.mark.unit
class TestStop:

    def test_stop_flushes_interim_after_grace(self, manager, engine_factory, fake_loop):
        manager.start()
        engine = engine_factory.latest
        engine.end_on_stop = False
        engine.emit_final("we are done")
        engine.emit_interim("and finally")

        manager.stop()
        assert manager.state is SessionState.STOPPING
        assert engine.stop_calls == 1

        fake_loop.advance(0.15)

        assert manager.state is SessionState.STOPPED
        assert manager.final_transcript == "we are done and finally"
        assert manager.interim_transcript == ""
        assert not manager.session.is_recording

    def test_late_final_during_grace_is_kept(self, manager, engine_factory, fake_loop):
        manager.start()
        engine = engine_factory.latest
        engine.end_on_stop = False
        engine.emit_interim("late wor")

        manager.stop()
        engine.emit_final("late words")
        engine.emit_end()
        fake_loop.advance(0.15)

        assert manager.final_transcript == "late words"
        assert len(engine_factory.engines) == 1

    def test_stop_does_not_restart(self, manager, engine_factory, fake_loop):
        manager.start()
        manager.stop()
        fake_loop.advance(60.0)

        assert len(engine_factory.engines) == 1
        assert manager.state is SessionState.STOPPED

    def test_stop_during_restart_cancels_recreation(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_end()
        assert manager.state is SessionState.RESTARTING

        manager.stop()
        fake_loop.advance(1.0)

        assert len(engine_factory.engines) == 1
        assert manager.state is SessionState.STOPPED

    def test_stop_when_idle_is_noop(self, manager):
        manager.stop()
        assert manager.state is SessionState.IDLE

    def test_stopped_event_carries_snapshot(self, published_manager, engine_factory,
                                            fake_loop, collector):
        published_manager.start()
        engine_factory.latest.emit_final("hello world")
        published_manager.stop()
        fake_loop.advance(0.15)

        stopped = collector.of_type("stopped")
        assert len(stopped) == 1
        snapshot = stopped[0].metadata["snapshot"]
        assert snapshot.final_transcript == "hello world"
        assert snapshot.state is SessionState.STOPPED
        assert snapshot.profile == "chrome"

    def test_session_duration(self, manager, fake_loop):
        manager.start()
        fake_loop.advance(5.0)
        assert manager.session_duration == 5.0

        manager.stop()
        fake_loop.advance(0.15)
        fake_loop.advance(10.0)

        assert manager.session_duration == pytest.approx(5.15)

    def test_abort_drops_interim(self, manager, engine_factory, fake_loop):
        manager.start()
        engine = engine_factory.latest
        engine.emit_final("kept")
        engine.emit_interim("dropped")

        manager.abort()
        fake_loop.advance(1.0)

        assert manager.state is SessionState.STOPPED
        assert manager.final_transcript == "kept"
        assert manager.interim_transcript == ""
        assert engine.abort_calls == 1
        assert len(engine_factory.engines) == 1


@pytest.mark.unit
class TestTranscriptControls:

    def test_clear_transcript_while_listening(self, manager, engine_factory):
        manager.start()
        engine_factory.latest.emit_final("forget me")
        manager.clear_transcript()

        assert manager.final_transcript == ""
        assert manager.words == ()
        assert manager.state is SessionState.LISTENING

        engine_factory.latest.emit_final("keep me")
        assert manager.final_transcript == "keep me"

    def test_clear_transcript_after_stop_resets_duration(self, manager, fake_loop):
        manager.start()
        fake_loop.advance(3.0)
        manager.stop()
        fake_loop.advance(0.15)

        manager.clear_transcript()

        assert manager.session_duration == 0.0
        assert manager.pause_metrics is None

    def test_accent_change_restarts_sensitive_profile(self, manager, engine_factory, fake_loop):
        manager.start()
        engine_factory.latest.emit_final("bonjour")

        manager.set_accent("en-GB")
        fake_loop.advance(0.15)
        assert manager.state is SessionState.STOPPED

        fake_loop.advance(0.15)
        assert manager.state is SessionState.LISTENING
        assert engine_factory.latest.lang == "en-GB"
        assert len(engine_factory.engines) == 2
        assert manager.final_transcript == ""

    def test_accent_change_on_insensitive_profile(self, make_manager, engine_factory):
        manager = make_manager("generic")
        manager.start()

        manager.set_accent("en-AU")

        assert len(engine_factory.engines) == 1
        assert manager.state is SessionState.LISTENING
        assert manager.accent == "en-AU"

    def test_stop_cancels_pending_accent_restart(self, manager, engine_factory, fake_loop):
        manager.start()
        manager.set_accent("de-DE")
        fake_loop.advance(0.15)

        manager.stop()
        fake_loop.advance(1.0)

        assert len(engine_factory.engines) == 1
        assert manager.state is SessionState.STOPPED
