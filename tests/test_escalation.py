"""
Unit tests for response.escalation

Countdowns run with a millisecond tick; the make_escalation fixture stops
and joins every countdown it builds.
"""
import time
from unittest.mock import MagicMock, call

import pytest

from fall_detection.errors import InvalidConfiguration
from response.emergency_alert import AlertComposer, Location
from response.escalation import (
    FINAL_WARNING,
    INITIAL_PROMPT,
    REMINDER_PROMPT,
    CountdownState,
)
from response.haptics import LONG_PULSE_MS, TICK_PULSE_MS


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


class CancellingObserver:
    """Presses "I'm okay" when the countdown reaches `at`."""

    def __init__(self, at):
        self.at = at
        self.escalation = None
        self.ticks = []
        self.timeouts = 0
        self.cancels = 0

    def on_tick(self, remaining):
        self.ticks.append(remaining)
        if remaining == self.at:
            self.escalation.cancel()

    def on_timeout(self):
        self.timeouts += 1

    def on_cancel(self):
        self.cancels += 1


class TestNaturalTimeout:

    def test_ten_ticks_then_one_timeout(self, make_escalation, recorder):
        escalation = make_escalation()
        assert escalation.start(10)
        escalation.join(timeout=5)

        assert escalation.observer.ticks == [9, 8, 7, 6, 5, 4, 3, 2, 1, 0]
        assert escalation.observer.timeouts == 1
        assert escalation.observer.cancels == 0
        assert escalation.state is CountdownState.COMPLETED
        assert len(recorder.drafts) == 1

    def test_announcements_and_pulses(self, make_escalation):
        escalation = make_escalation()
        escalation.start(10)
        escalation.join(timeout=5)

        spoken = [c.args[0] for c in escalation._speech.speak.call_args_list]
        assert spoken == [INITIAL_PROMPT, REMINDER_PROMPT, FINAL_WARNING]
        assert escalation._haptics.pulses == [TICK_PULSE_MS] * 10 + [LONG_PULSE_MS]

    def test_reminder_every_fifth_second(self, make_escalation):
        escalation = make_escalation()
        escalation.start(16)
        escalation.join(timeout=5)

        spoken = [c.args[0] for c in escalation._speech.speak.call_args_list]
        # remaining 15, 10 and 5
        assert spoken.count(REMINDER_PROMPT) == 3

    def test_duration_defaults_to_settings(self, make_escalation, settings):
        settings.set_timer(12)
        escalation = make_escalation()
        escalation.start()
        escalation.join(timeout=5)
        assert len(escalation.observer.ticks) == 12

    def test_sms_disabled_still_times_out(self, make_escalation, recorder, settings):
        settings.sms_enabled = False
        escalation = make_escalation()
        escalation.start(3)
        escalation.join(timeout=5)
        assert escalation.observer.timeouts == 1
        assert recorder.drafts == []

    def test_failed_location_still_composes_with_placeholder(self, make_escalation, recorder, location_provider):
        location_provider.last_known_location.side_effect = OSError("no fix")
        escalation = make_escalation()
        escalation.start(2)
        escalation.join(timeout=5)
        assert len(recorder.drafts) == 1
        assert "Location: unknown" in recorder.drafts[0].body


class TestCancel:

    def test_cancel_from_tick_observer(self, make_escalation, recorder):
        observer = CancellingObserver(at=6)
        escalation = make_escalation(observer=observer)
        observer.escalation = escalation

        escalation.start(10)
        escalation.join(timeout=5)

        assert observer.ticks == [9, 8, 7, 6]
        assert observer.timeouts == 0
        assert observer.cancels == 1
        assert escalation.state is CountdownState.CANCELLED
        assert recorder.drafts == []

    def test_no_notifications_after_cancel(self, make_escalation):
        escalation = make_escalation(tick_interval=0.02)
        escalation.start(10)
        assert wait_for(lambda: len(escalation.observer.ticks) >= 2)

        assert escalation.cancel()
        seen = list(escalation.observer.ticks)
        time.sleep(0.3)

        assert escalation.observer.ticks == seen
        assert escalation.observer.timeouts == 0
        assert escalation._haptics.pulses[-1] == LONG_PULSE_MS
        escalation._speech.stop.assert_called_once()

    def test_cancel_when_idle_is_noop(self, make_escalation):
        escalation = make_escalation()
        assert not escalation.cancel()
        assert escalation.observer.cancels == 0
        assert escalation._haptics.pulses == []

    def test_stop_is_idempotent(self, make_escalation):
        escalation = make_escalation(tick_interval=1.0)
        escalation.start(10)
        escalation.stop()
        escalation.stop()
        assert escalation.state is CountdownState.IDLE
        assert escalation.observer.cancels == 1

    def test_stop_after_completion_cleans_up(self, make_escalation):
        escalation = make_escalation()
        escalation.start(2)
        escalation.join(timeout=5)
        assert escalation.state is CountdownState.COMPLETED
        pulses_before = len(escalation._haptics.pulses)

        escalation.stop()

        escalation._speech.stop.assert_called_once()
        assert escalation._haptics.pulses[pulses_before:] == [LONG_PULSE_MS]
        assert escalation.state is CountdownState.IDLE
        assert escalation.observer.cancels == 0
        assert escalation.observer.timeouts == 1

    def test_cancel_after_completion_cleans_up(self, make_escalation):
        escalation = make_escalation()
        escalation.start(2)
        escalation.join(timeout=5)

        assert escalation.cancel()
        escalation._speech.stop.assert_called_once()
        assert escalation._haptics.pulses[-1] == LONG_PULSE_MS
        assert escalation.state is CountdownState.CANCELLED
        assert escalation.observer.cancels == 0

    def test_cancel_from_timeout_callback_sends_no_cancel(self, make_escalation):
        class CancelOnTimeout(CancellingObserver):
            def on_timeout(self):
                super().on_timeout()
                self.escalation.cancel()

        observer = CancelOnTimeout(at=None)
        escalation = make_escalation(observer=observer)
        observer.escalation = escalation

        escalation.start(2)
        escalation.join(timeout=5)

        assert observer.timeouts == 1
        assert observer.cancels == 0
        assert escalation.state is CountdownState.CANCELLED

    def test_cancel_during_location_lookup_discards_late_result(self, make_escalation, recorder):
        provider = MagicMock()
        provider.has_permission.return_value = True

        def slow_lookup():
            time.sleep(0.3)
            return Location(1.0, 2.0, 5.0)

        provider.last_known_location.side_effect = slow_lookup
        composer = AlertComposer(recorder, provider, location_timeout=2.0)
        escalation = make_escalation(composer=composer)

        escalation.start(1)
        assert wait_for(lambda: provider.last_known_location.called)
        assert escalation.cancel()
        escalation.join(timeout=5)
        composer.close()

        assert recorder.drafts == []
        assert escalation.observer.timeouts == 0
        assert escalation.observer.cancels == 1


class TestSingleCountdown:

    def test_second_start_is_ignored(self, make_escalation):
        escalation = make_escalation(tick_interval=1.0)
        assert escalation.start(10)
        assert not escalation.start(10)
        assert escalation.remaining == 10

    def test_one_countdown_per_process(self, make_escalation):
        first = make_escalation(tick_interval=1.0)
        second = make_escalation()

        assert first.start(10)
        assert not second.start(3)
        assert second.state is CountdownState.IDLE

        first.cancel()
        assert second.start(3)
        second.join(timeout=5)
        assert second.observer.timeouts == 1

    def test_restart_after_completion(self, make_escalation):
        escalation = make_escalation()
        escalation.start(2)
        escalation.join(timeout=5)
        assert escalation.start(2)
        escalation.join(timeout=5)
        assert escalation.observer.timeouts == 2

    def test_rejects_non_positive_duration(self, make_escalation):
        with pytest.raises(InvalidConfiguration):
            make_escalation().start(0)


class TestFailureIsolation:

    def test_side_effect_failures_do_not_abort(self, make_escalation, recorder):
        speech = MagicMock()
        speech.speak.side_effect = RuntimeError("no audio device")
        haptics = MagicMock()
        haptics.pulse.side_effect = OSError("no motor")
        escalation = make_escalation(speech=speech, haptics=haptics)

        escalation.start(5)
        escalation.join(timeout=5)

        assert escalation.observer.ticks == [4, 3, 2, 1, 0]
        assert escalation.observer.timeouts == 1
        assert len(recorder.drafts) == 1

    def test_observer_failure_does_not_abort(self, make_escalation):
        observer = MagicMock()
        observer.on_tick.side_effect = ValueError("ui gone")
        escalation = make_escalation(observer=observer)

        escalation.start(3)
        escalation.join(timeout=5)

        assert observer.on_tick.call_args_list == [call(2), call(1), call(0)]
        observer.on_timeout.assert_called_once()

    def test_without_capabilities(self, make_escalation):
        escalation = make_escalation(composer=None, speech=None, haptics=None, observer=None)
        escalation.start(2)
        escalation.join(timeout=5)
        assert escalation.state is CountdownState.COMPLETED
