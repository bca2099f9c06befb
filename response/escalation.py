"""
response/escalation.py

The emergency countdown that follows a fall verdict.

    IDLE -> RUNNING(remaining) -> COMPLETED | CANCELLED -> IDLE

While RUNNING the countdown ticks once per `tick_interval`, notifying the
observer with the seconds left, pulsing the haptics and, every fifth
second, reminding the user out loud. When it reaches zero it warns, hands
the alert to the AlertComposer, and notifies the observer of the timeout.
cancel() stops all of that; nothing reaches the observer after it returns.

Only one countdown may run per process, whichever session started it.

Usage
-----
    escalation = EmergencyEscalation(
        settings,
        composer=AlertComposer(ConsoleComposer(), StaticLocationProvider()),
        speech=SpeechService(),
        haptics=ToneHaptics(),
        observer=my_observer,
    )
    escalation.start()          # uses settings.timer_duration_seconds
    ...
    escalation.cancel()         # "I'm okay"
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional, Protocol

from fall_detection.errors import InvalidConfiguration
from response.emergency_alert import AlertComposer
from response.haptics import LONG_PULSE_MS, TICK_PULSE_MS, Haptics
from response.settings import AlertSettings
from response.voice_assistant import Speech

logger = logging.getLogger(__name__)

INITIAL_PROMPT   = "A fall is detected. Are you okay?"
REMINDER_PROMPT  = "Please tap I'm okay if you are fine."
FINAL_WARNING    = "No response detected. Preparing emergency message."
REMINDER_EVERY   = 5

# Held by whichever countdown is running in this process.
_COUNTDOWN_SLOT = threading.Lock()


class CountdownState(Enum):
    IDLE      = "idle"
    RUNNING   = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EscalationObserver(Protocol):
    def on_tick(self, remaining: int) -> None: ...
    def on_timeout(self) -> None: ...
    def on_cancel(self) -> None: ...


class EmergencyEscalation:
    """
    Parameters
    ----------
    settings : AlertSettings
        Read when the countdown starts and again when the message is
        composed. Replace the attribute to pick up new settings.
    composer : AlertComposer | None
        None skips message composition entirely.
    speech : Speech | None
    haptics : Haptics | None
    observer : EscalationObserver | None
        Called on the countdown thread.
    tick_interval : float
        Seconds per tick. 1.0 in production; tests shrink it.
    logger : logging.Logger | None
    """

    def __init__(
        self,
        settings: AlertSettings,
        composer: Optional[AlertComposer] = None,
        speech: Optional[Speech] = None,
        haptics: Optional[Haptics] = None,
        observer: Optional[EscalationObserver] = None,
        tick_interval: float = 1.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.observer = observer
        self.tick_interval = tick_interval
        self._composer = composer
        self._speech = speech
        self._haptics = haptics
        self._log = logger or logging.getLogger(__name__)

        # RLock so an observer may call cancel() from inside on_tick
        self._lock = threading.RLock()
        self._state = CountdownState.IDLE
        self._remaining = 0
        self._run_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._slot_held = False
        # between the timeout and the end of composition
        self._composing = False

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def state(self) -> CountdownState:
        return self._state

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def is_running(self) -> bool:
        return self._state is CountdownState.RUNNING

    def start(self, duration_seconds: Optional[int] = None) -> bool:
        """
        Begin a countdown. Returns False (and does nothing) when a countdown
        is already running here or anywhere else in the process.
        """
        if duration_seconds is None:
            duration_seconds = self.settings.timer_duration_seconds
        if duration_seconds < 1:
            raise InvalidConfiguration(f"Countdown needs at least 1 second, got {duration_seconds}")

        with self._lock:
            if self._state is CountdownState.RUNNING:
                self._log.info("Countdown already running; ignoring start")
                return False
            if not _COUNTDOWN_SLOT.acquire(blocking=False):
                self._log.warning("Another countdown is active in this process; ignoring start")
                return False

            self._slot_held = True
            self._state = CountdownState.RUNNING
            self._remaining = duration_seconds
            self._run_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(duration_seconds, self._run_event),
                name="escalation-countdown",
                daemon=True,
            )

            self._log.warning("Emergency countdown started | %ds", duration_seconds)
            self._side_effect("speech resume", lambda s: s.resume(), self._speech)
            self._say(INITIAL_PROMPT)
            self._thread.start()
        return True

    def cancel(self) -> bool:
        """
        Cancel a running countdown, or a composition still in progress.

        After a countdown has finished this still cleans up: speech is cut
        off and the long pulse plays, but the observer hears nothing more.
        Returns False only when there was no countdown at all (IDLE).
        """
        with self._lock:
            if self._state is CountdownState.IDLE:
                self._log.debug("Cancel requested with no countdown")
                return False

            active = self._state is CountdownState.RUNNING or self._composing
            if active:
                self._run_event.set()
                self._composing = False
                self._release_slot(self._run_event)
                self._log.info("Emergency countdown cancelled at %ds", self._remaining)
            else:
                self._log.info("Cleaning up finished countdown (%s)", self._state.value)
            self._state = CountdownState.CANCELLED

            self._side_effect("speech stop", lambda s: s.stop(), self._speech)
            self._pulse(LONG_PULSE_MS)
            if active:
                self._notify("on_cancel")
        return True

    def stop(self) -> None:
        """Cancel if needed and return to IDLE. Safe to call repeatedly."""
        with self._lock:
            self.cancel()
            self._state = CountdownState.IDLE
            self._remaining = 0

    def reset(self) -> None:
        """Return a finished countdown to IDLE. No-op while running."""
        with self._lock:
            if self._state is not CountdownState.RUNNING:
                self._state = CountdownState.IDLE

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    # ── Countdown thread ──────────────────────────────────────────────────────

    def _run(self, duration: int, cancelled: threading.Event) -> None:
        remaining = duration
        try:
            while remaining > 0:
                if cancelled.wait(self.tick_interval):
                    return
                with self._lock:
                    if cancelled.is_set():
                        return
                    remaining -= 1
                    self._remaining = remaining
                    self._log.debug("Countdown tick: %ds remaining", remaining)
                    self._notify("on_tick", remaining)
                    if cancelled.is_set():
                        # the observer cancelled from inside on_tick
                        return
                    self._pulse(TICK_PULSE_MS)
                    if remaining % REMINDER_EVERY == 0 and remaining > 0:
                        self._say(REMINDER_PROMPT)

            with self._lock:
                if cancelled.is_set():
                    return
                self._state = CountdownState.COMPLETED
                self._composing = True
                self._log.warning("Countdown expired with no response")
                self._say(FINAL_WARNING)
                self._pulse(LONG_PULSE_MS)

            # Outside the lock: the location lookup may take a while and
            # cancel() has to stay responsive meanwhile.
            if self._composer is not None:
                try:
                    self._composer.compose_emergency_message(
                        self.settings, is_cancelled=cancelled.is_set
                    )
                except Exception as exc:
                    self._log.error("Alert composition failed: %s", exc, exc_info=True)

            with self._lock:
                if cancelled.is_set():
                    return
                self._finish_run(cancelled)
                self._notify("on_timeout")
        finally:
            with self._lock:
                self._finish_run(cancelled)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _finish_run(self, run_event: threading.Event) -> None:
        if self._run_event is run_event:
            self._composing = False
        self._release_slot(run_event)

    def _release_slot(self, run_event: threading.Event) -> None:
        # a finished run must not free the slot of a newer run on this instance
        if self._slot_held and self._run_event is run_event:
            self._slot_held = False
            _COUNTDOWN_SLOT.release()

    def _notify(self, event: str, *args) -> None:
        if self.observer is None:
            return
        try:
            getattr(self.observer, event)(*args)
        except Exception as exc:
            self._log.error("Escalation observer %s failed: %s", event, exc, exc_info=True)

    def _say(self, message: str) -> None:
        self._side_effect("speech", lambda s: s.speak(message), self._speech)

    def _pulse(self, duration_ms: int) -> None:
        self._side_effect("haptics", lambda h: h.pulse(duration_ms), self._haptics)

    def _side_effect(self, name: str, action, target) -> None:
        if target is None:
            return
        try:
            action(target)
        except Exception as exc:
            self._log.warning("%s failed: %s", name.capitalize(), exc)
