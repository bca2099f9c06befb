# fall_detection/posture_tracker.py

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .posture import PostureScore, PostureStatus

BAD_POSTURE_THRESHOLD = 70       # score below this is "bad"
SUSTAINED_DURATION_SECONDS = 30  # must stay bad this long to be flagged
CHECK_INTERVAL_SECONDS = 5       # nominal period between analyses


@dataclass(frozen=True)
class SustainedPostureEvent:
    """
    Emitted when bad posture has lasted long enough to persist and alert on.

    analysis carries an extra "Sustained for Ns" issue.
    """
    status: PostureStatus
    duration_seconds: int
    analysis: PostureScore


class PostureStateTracker:
    """
    Separates short excursions into bad posture (bending to tie a shoe)
    from posture that stays bad for a sustained period.

    States
    ------
    Uninitialized          no observation yet
    Tracking(status, start, bad_count)

    An event fires when, within one status, the bad streak covers
    `sustained_seconds` worth of ticks AND the status has lasted that long.
    After firing, the streak and dwell clock restart so the same condition
    re-fires at most once per sustained window. When the status changes,
    the state being exited is checked once more before tracking restarts.

    clock : returns seconds; defaults to time.monotonic. Inject a fake one
            to drive the tracker without waiting.
    """

    def __init__(
        self,
        bad_threshold: int = BAD_POSTURE_THRESHOLD,
        sustained_seconds: float = SUSTAINED_DURATION_SECONDS,
        tick_seconds: float = CHECK_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.bad_threshold = bad_threshold
        self.sustained_seconds = sustained_seconds
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._status: Optional[PostureStatus] = None
        self._start_time = 0.0
        self._bad_count = 0
        self._last: Optional[PostureScore] = None

    # ── Public API ────────────────────────────────────────────────────────────

    def update(self, analysis: PostureScore) -> Optional[SustainedPostureEvent]:
        """Feed one analysis tick. Returns an event when posture is flagged."""
        now = self._clock()
        is_bad = analysis.score < self.bad_threshold

        # ── First observation ─────────────────────────────────────────────────
        if self._status is None:
            self._restart(analysis, now, is_bad)
            self._log.debug(
                "PostureStateTracker initialized: status=%s, score=%d",
                analysis.status.value,
                analysis.score,
            )
            return None

        # ── Status change: settle the state being exited ──────────────────────
        if analysis.status is not self._status:
            self._log.info(
                "Posture status changed: %s -> %s",
                self._status.value,
                analysis.status.value,
            )
            event = None
            if self._is_sustained(now):
                event = self._make_event(self._last, now)
            self._restart(analysis, now, is_bad)
            return event

        # ── Same status ───────────────────────────────────────────────────────
        if not is_bad:
            # dwell clock keeps running; only the bad streak resets
            self._bad_count = 0
            self._last = analysis
            return None

        self._bad_count += 1
        self._log.debug(
            "Bad posture sustained: %ds (count: %d)",
            int(now - self._start_time),
            self._bad_count,
        )

        if not self._is_sustained(now):
            self._last = analysis
            return None

        event = self._make_event(analysis, now)
        self._last = event.analysis
        self._bad_count = 0
        self._start_time = now
        return event

    def reset(self) -> None:
        self._status = None
        self._start_time = 0.0
        self._bad_count = 0
        self._last = None
        self._log.info("PostureStateTracker reset")

    @property
    def current_status(self) -> Optional[PostureStatus]:
        return self._status

    @property
    def bad_count(self) -> int:
        return self._bad_count

    @property
    def is_currently_bad(self) -> bool:
        return self._last is not None and self._last.score < self.bad_threshold

    def current_duration(self) -> int:
        """Whole seconds spent in the current status, 0 when uninitialized."""
        if self._status is None:
            return 0
        return int(self._clock() - self._start_time)

    def summary(self) -> str:
        status = self._status.value if self._status else None
        return (f"Status: {status}, Duration: {self.current_duration()}s, "
                f"Bad count: {self._bad_count}")

    # ── Private helpers ───────────────────────────────────────────────────────

    def _restart(self, analysis: PostureScore, now: float, is_bad: bool) -> None:
        self._status = analysis.status
        self._start_time = now
        self._bad_count = 1 if is_bad else 0
        self._last = analysis

    def _is_sustained(self, now: float) -> bool:
        streak_seconds = self._bad_count * self.tick_seconds
        elapsed = now - self._start_time
        return streak_seconds >= self.sustained_seconds and elapsed >= self.sustained_seconds

    def _make_event(self, analysis: PostureScore, now: float) -> SustainedPostureEvent:
        duration = int(now - self._start_time)
        self._log.warning(
            "Sustained bad posture detected | duration=%ds | score=%d",
            duration,
            analysis.score,
        )
        return SustainedPostureEvent(
            status=self._status,
            duration_seconds=duration,
            analysis=analysis.with_issue(f"Sustained for {duration}s"),
        )
