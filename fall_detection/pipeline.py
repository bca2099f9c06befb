# fall_detection/pipeline.py

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .fusion import FusionResult, ProbabilityFusion
from .keypoint_window import KeypointWindow
from .posture import PostureAnalyzer
from .posture_tracker import CHECK_INTERVAL_SECONDS, PostureStateTracker, SustainedPostureEvent
from .rule_scorer import RuleScorer
from .sequence_classifier import SequenceClassifier


# ── Result dataclasses ────────────────────────────────────────────────────────

class DecisionMode(Enum):
    """
    Which verdict starts the emergency countdown.

    EITHER      raw classifier (p > 0.85) or fused probability (p >= 0.5)
    FUSED       fused probability only
    CLASSIFIER  raw classifier only
    """
    EITHER     = 'either'
    FUSED      = 'fused'
    CLASSIFIER = 'classifier'


@dataclass(frozen=True)
class FallDecision:
    """
    Everything the session derives from one window.

    model_probability : sequence classifier output
    rule_score        : heuristic score for the same window
    fusion            : weighted combination and its verdict
    classifier_alarm  : raw-classifier verdict
    fused_alarm       : fusion verdict
    is_fall           : verdict under the session's DecisionMode
    """
    model_probability : float
    rule_score        : float
    fusion            : FusionResult
    classifier_alarm  : bool
    fused_alarm       : bool
    is_fall           : bool


@dataclass(frozen=True)
class SessionSummary:
    start_time       : float
    end_time         : float
    fall_count       : int
    duration_seconds : int

    @property
    def has_falls(self) -> bool:
        return self.fall_count > 0


class MonitoringSession:
    """
    One monitoring run: keypoint frames in, fall verdicts and posture events out.

    Three schedules run side by side:
      • frame path    — add_frame(), called by the frame source at ~30 Hz
      • inference     — one worker thread; frames arriving while it is busy
                        are coalesced into a single follow-up evaluation
      • posture       — every `posture_interval` seconds the latest frame is
                        scored and fed to the tracker

    A fall verdict clears the window, bumps the fall count, notifies
    on_fall and starts the escalation countdown (if one was given). No
    further verdict is reached until the window has filled up again.

    Usage
    -----
    session = MonitoringSession(SequenceClassifier(engine), escalation=escalation)
    session.start()
    for frame in source:
        session.add_frame(frame)
    summary = session.stop()
    """

    def __init__(
        self,
        classifier: SequenceClassifier,
        escalation=None,
        rule_scorer: Optional[Callable[[np.ndarray], float]] = None,
        fusion: Optional[ProbabilityFusion] = None,
        posture_analyzer: Optional[PostureAnalyzer] = None,
        tracker: Optional[PostureStateTracker] = None,
        window: Optional[KeypointWindow] = None,
        decision_mode: DecisionMode = DecisionMode.EITHER,
        strict_window: bool = False,
        posture_interval: float = CHECK_INTERVAL_SECONDS,
        on_fall: Optional[Callable[[FallDecision], None]] = None,
        on_posture_event: Optional[Callable[[SustainedPostureEvent], None]] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self._log = logger or logging.getLogger(__name__)

        self._classifier  = classifier
        self._escalation  = escalation
        self._rule_scorer = rule_scorer or RuleScorer()
        self._fusion      = fusion or ProbabilityFusion(logger=self._log)
        self._analyzer    = posture_analyzer or PostureAnalyzer(logger=self._log)
        self._tracker     = tracker or PostureStateTracker(logger=self._log)
        self._window      = window or KeypointWindow(logger=self._log)

        self.decision_mode    = decision_mode
        self.strict_window    = strict_window
        self.posture_interval = posture_interval
        self.on_fall          = on_fall
        self.on_posture_event = on_posture_event
        self._clock           = clock

        self._lock        = threading.Lock()
        self._frame_ready = threading.Event()
        self._stopping    = threading.Event()
        self._threads     = []
        self._running     = False
        self._fall_count  = 0
        self._start_time  = 0.0
        # set after a verdict; evaluation resumes once the window is full again
        self._refilling   = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self._running:
                self._log.info("Monitoring session already running")
                return
            self._running = True
            self._fall_count = 0
            self._start_time = self._clock()
            self._refilling = False

        self._window.clear()
        self._tracker.reset()
        self._stopping.clear()
        self._frame_ready.clear()

        self._threads = [
            threading.Thread(target=self._inference_loop, name='fall-inference', daemon=True),
            threading.Thread(target=self._posture_loop, name='posture-tick', daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        self._log.info("Monitoring session started | mode=%s | strict=%s",
                       self.decision_mode.value, self.strict_window)

    def stop(self) -> SessionSummary:
        """Stop all schedules, cancel any countdown and reset per-session state."""
        with self._lock:
            was_running = self._running
            self._running = False

        self._stopping.set()
        self._frame_ready.set()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=5)
        self._threads = []

        if self._escalation is not None:
            self._escalation.stop()
        self._window.clear()
        self._tracker.reset()
        self._refilling = False

        end_time = self._clock()
        start_time = self._start_time if was_running else end_time
        summary = SessionSummary(
            start_time       = start_time,
            end_time         = end_time,
            fall_count       = self._fall_count,
            duration_seconds = int(end_time - start_time),
        )
        self._log.info("Monitoring session stopped | falls=%d | duration=%ds",
                       summary.fall_count, summary.duration_seconds)
        return summary

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def fall_count(self) -> int:
        return self._fall_count

    @property
    def window(self) -> KeypointWindow:
        return self._window

    # ── Frame path ────────────────────────────────────────────────────────────

    def add_frame(self, frame) -> None:
        """Buffer one keypoint frame. Raises ShapeMismatch for a bad frame."""
        self._window.add(frame)
        if self._running:
            self._frame_ready.set()

    def evaluate_window(self) -> FallDecision:
        """
        Run both decision paths over the current window. Synchronous; the
        worker thread calls this, and so can tests or a caller that wants
        to drive the session itself.
        """
        tensor = self._window.to_tensor(strict=self.strict_window)

        p_model = self._classifier.predict(tensor)
        p_rule  = float(self._rule_scorer(tensor))
        fused   = self._fusion.evaluate(p_model, p_rule)
        classifier_alarm = self._classifier.is_alarm(p_model)

        if self.decision_mode is DecisionMode.FUSED:
            is_fall = fused.is_fall
        elif self.decision_mode is DecisionMode.CLASSIFIER:
            is_fall = classifier_alarm
        else:
            is_fall = fused.is_fall or classifier_alarm

        self._log.debug("Window: model=%.3f rule=%.3f fused=%.3f fall=%s",
                        p_model, p_rule, fused.final_probability, is_fall)
        return FallDecision(
            model_probability = p_model,
            rule_score        = p_rule,
            fusion            = fused,
            classifier_alarm  = classifier_alarm,
            fused_alarm       = fused.is_fall,
            is_fall           = is_fall,
        )

    def process_window(self) -> Optional[FallDecision]:
        """
        Evaluate and act on the verdict. Returns None when strict mode is
        waiting for a full window, or while the window refills after a fall.
        """
        if self._refilling:
            if not self._window.is_ready():
                return None
            self._refilling = False
        if self.strict_window and not self._window.is_ready():
            return None
        if self._window.is_empty():
            return None

        decision = self.evaluate_window()
        if decision.is_fall:
            self._handle_fall(decision)
        return decision

    def trigger_emergency(self) -> bool:
        """Manual trigger: start the countdown without a fall verdict."""
        if self._escalation is None:
            self._log.warning("Manual emergency trigger with no escalation configured")
            return False
        self._log.warning("Manual emergency trigger")
        return self._escalation.start()

    # ── Posture path ──────────────────────────────────────────────────────────

    def posture_tick(self) -> Optional[SustainedPostureEvent]:
        frame = self._window.latest_frame()
        if frame is None:
            return None

        analysis = self._analyzer.analyze(frame)
        event = self._tracker.update(analysis)
        if event is not None and self.on_posture_event is not None:
            try:
                self.on_posture_event(event)
            except Exception as exc:
                self._log.error("on_posture_event callback failed: %s", exc, exc_info=True)
        return event

    # ── Worker loops ──────────────────────────────────────────────────────────

    def _inference_loop(self) -> None:
        while True:
            self._frame_ready.wait()
            if self._stopping.is_set():
                return
            self._frame_ready.clear()
            try:
                self.process_window()
            except Exception as exc:
                self._log.error("Window processing failed: %s", exc, exc_info=True)

    def _posture_loop(self) -> None:
        while not self._stopping.wait(self.posture_interval):
            try:
                self.posture_tick()
            except Exception as exc:
                self._log.error("Posture tick failed: %s", exc, exc_info=True)

    def _handle_fall(self, decision: FallDecision) -> None:
        with self._lock:
            self._fall_count += 1
            count = self._fall_count

        self._log.warning(
            "FALL DETECTED | model=%.2f | rule=%.2f | fused=%.2f | total=%d",
            decision.model_probability,
            decision.rule_score,
            decision.fusion.final_probability,
            count,
        )
        # the frames that produced this verdict must not fire again, and a
        # half-empty window after it must not either
        self._window.clear()
        self._refilling = True

        if self.on_fall is not None:
            try:
                self.on_fall(decision)
            except Exception as exc:
                self._log.error("on_fall callback failed: %s", exc, exc_info=True)

        if self._escalation is not None:
            self._escalation.start()
