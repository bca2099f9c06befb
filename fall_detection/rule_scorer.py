# fall_detection/rule_scorer.py

from dataclasses import dataclass

import numpy as np

from .keypoint_window import LEFT_HIP, RIGHT_HIP

# ── Thresholds ────────────────────────────────────────────────────────────────
# All positions are normalised image coordinates, y grows downwards.
#
# horizontal: bbox width / height of the latest pose
#   • ~0.3  = upright person (tall, narrow box)
#   • 2.0+  = body lying across the frame
#
# ground: mean hip height in the latest pose
#   • ~0.5  = hips at mid-frame (standing)
#   • 0.75+ = hips near the floor line
#
# stillness: mean absolute per-frame keypoint displacement over the most
# recent frames. Someone lying motionless after a fall scores close to 1.

ASPECT_UPRIGHT   = 0.5
ASPECT_LYING     = 2.0
HIP_Y_UPRIGHT    = 0.55
HIP_Y_FLOOR      = 0.75
STILL_FRAMES     = 10
MOTION_LIMIT     = 0.02    # displacement per frame at which stillness hits 0

WEIGHT_HORIZONTAL = 0.45
WEIGHT_GROUND     = 0.35
WEIGHT_STILLNESS  = 0.20


@dataclass(frozen=True)
class RuleScore:
    horizontal : float
    ground     : float
    stillness  : float
    score      : float


class RuleScorer:
    """
    Deterministic fall heuristic over a keypoint window.

    Combines how horizontal the latest pose is, how close the hips are to the
    floor line and how still the body has been. Returns a score in [0, 1];
    an upright, motionless person lands around 0.2, a person lying still on
    the floor above 0.8.

    All-zero rows (padding or frames with no pose) are ignored. A window
    with no usable frame scores 0.

    coordinate_order : 'yx' (default, matches the model input) or 'xy'
    """

    def __init__(self, coordinate_order: str = 'yx'):
        if coordinate_order not in ('yx', 'xy'):
            raise ValueError(f"coordinate_order must be 'yx' or 'xy', got {coordinate_order!r}")
        self._y_first = coordinate_order == 'yx'

    def __call__(self, window) -> float:
        return self.score(window)

    def score(self, window) -> float:
        return self.explain(window).score

    def explain(self, window) -> RuleScore:
        frames = np.asarray(window, dtype=np.float64)
        frames = frames.reshape(-1, frames.shape[-1])
        valid = frames[np.any(frames != 0.0, axis=1)]

        if len(valid) == 0:
            return RuleScore(0.0, 0.0, 0.0, 0.0)

        ys, xs = self._split(valid[-1])

        # ── Verticality ───────────────────────────────────────────────────────
        bbox_w = xs.max() - xs.min()
        bbox_h = ys.max() - ys.min()
        aspect = bbox_w / (bbox_h + 1e-6)
        horizontal = _ramp(aspect, ASPECT_UPRIGHT, ASPECT_LYING)

        # ── Ground level ──────────────────────────────────────────────────────
        hip_y = (ys[LEFT_HIP] + ys[RIGHT_HIP]) / 2.0
        ground = _ramp(hip_y, HIP_Y_UPRIGHT, HIP_Y_FLOOR)

        # ── Stillness ─────────────────────────────────────────────────────────
        recent = valid[-STILL_FRAMES:]
        if len(recent) < 2:
            stillness = 0.0
        else:
            motion = float(np.mean(np.abs(np.diff(recent, axis=0))))
            stillness = 1.0 - _ramp(motion, 0.0, MOTION_LIMIT)

        score = (WEIGHT_HORIZONTAL * horizontal
                 + WEIGHT_GROUND * ground
                 + WEIGHT_STILLNESS * stillness)

        return RuleScore(
            horizontal = horizontal,
            ground     = ground,
            stillness  = stillness,
            score      = min(max(score, 0.0), 1.0),
        )

    def _split(self, frame):
        first, second = frame[0::2], frame[1::2]
        return (first, second) if self._y_first else (second, first)


def _ramp(value: float, low: float, high: float) -> float:
    """Linear 0→1 between low and high, clamped."""
    return float(min(max((value - low) / (high - low), 0.0), 1.0))
