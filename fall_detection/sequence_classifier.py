# fall_detection/sequence_classifier.py

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .errors import InferenceFailure, ShapeMismatch
from .keypoint_window import FEATURES_PER_FRAME, WINDOW_SIZE

DEFAULT_ALARM_THRESHOLD = 0.85   # standalone raw-classifier alarm, p > threshold
SAFE_DEFAULT_PROBABILITY = 0.01  # substituted when the engine fails


@dataclass(frozen=True)
class ClassifierResult:
    """
    probability : engine output clamped to [0, 1]
    is_fall     : probability > threshold
    threshold   : raw-classifier threshold that produced is_fall
    """
    probability : float
    is_fall     : bool
    threshold   : float

    @property
    def probability_percent(self) -> str:
        return f"{int(self.probability * 100)}%"

    @property
    def status(self) -> str:
        return 'FALL DETECTED' if self.is_fall else 'NO FALL'

    def __str__(self) -> str:
        return (f"ClassifierResult(probability={self.probability_percent}, "
                f"status={self.status}, threshold={int(self.threshold * 100)}%)")


class SequenceClassifier:
    """
    Boundary adapter around an opaque sequence-model engine.

    engine : callable taking a float32 tensor of shape [1, T, D] and
             returning something that reduces to one float (scalar,
             [1], [1, 1], ...). Loading and closing the engine belongs to
             whoever built it; see fall_detection.engines.

    predict() never raises for engine problems. A crash, a NaN or an
    unusable output is logged as an InferenceFailure and replaced with
    SAFE_DEFAULT_PROBABILITY so the monitoring loop keeps running.
    A window of the wrong shape is a caller bug and raises ShapeMismatch.
    """

    def __init__(
        self,
        engine: Callable[[np.ndarray], object],
        window_size: int = WINDOW_SIZE,
        features_per_frame: int = FEATURES_PER_FRAME,
        alarm_threshold: float = DEFAULT_ALARM_THRESHOLD,
        safe_default: float = SAFE_DEFAULT_PROBABILITY,
        logger: Optional[logging.Logger] = None,
    ):
        self._engine = engine
        self.window_size = window_size
        self.features_per_frame = features_per_frame
        self.alarm_threshold = alarm_threshold
        self.safe_default = safe_default
        self._log = logger or logging.getLogger(__name__)

    # ── Public API ────────────────────────────────────────────────────────────

    def predict(self, window) -> float:
        """
        window : [T, D] or [1, T, D] array-like.
        returns: fall probability in [0, 1].
        """
        tensor = self._as_batch(window)

        try:
            start = time.perf_counter()
            raw = self._engine(tensor)
            probability = self._to_probability(raw)
            elapsed_ms = (time.perf_counter() - start) * 1000.0
        except Exception as exc:
            failure = exc if isinstance(exc, InferenceFailure) else InferenceFailure(str(exc))
            self._log.error(
                "Sequence inference failed, using safe default %.2f: %s",
                self.safe_default,
                failure,
                exc_info=True,
            )
            return self.safe_default

        self._log.debug("Inference completed in %.1fms, probability: %.4f", elapsed_ms, probability)
        return probability

    def is_alarm(self, probability: float, threshold: Optional[float] = None) -> bool:
        """Raw-classifier alarm. Strictly greater than the threshold."""
        limit = self.alarm_threshold if threshold is None else threshold
        return probability > limit

    def predict_with_result(self, window, threshold: Optional[float] = None) -> ClassifierResult:
        limit = self.alarm_threshold if threshold is None else threshold
        probability = self.predict(window)
        return ClassifierResult(
            probability = probability,
            is_fall     = self.is_alarm(probability, limit),
            threshold   = limit,
        )

    def close(self) -> None:
        """Forward to the engine's close() if it has one."""
        close = getattr(self._engine, 'close', None)
        if callable(close):
            try:
                close()
                self._log.info("Sequence engine closed")
            except Exception as exc:
                self._log.error("Error closing sequence engine: %s", exc, exc_info=True)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _as_batch(self, window) -> np.ndarray:
        arr = np.array(window, dtype=np.float32)
        expected = (self.window_size, self.features_per_frame)

        if arr.shape == expected:
            return arr[np.newaxis, ...]
        if arr.shape == (1,) + expected:
            return arr
        raise ShapeMismatch(
            f"Window must be {self.window_size} frames x {self.features_per_frame} features, "
            f"got shape {arr.shape}"
        )

    @staticmethod
    def _to_probability(raw) -> float:
        values = np.asarray(raw, dtype=np.float64).reshape(-1)
        if values.size == 0:
            raise InferenceFailure("Engine returned an empty output")

        probability = float(values[0])
        if math.isnan(probability):
            raise InferenceFailure("Engine returned NaN")
        return min(max(probability, 0.0), 1.0)
