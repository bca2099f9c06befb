# fall_detection/posture.py
"""
Posture scoring from a single keypoint frame.

PostureAnalyzer turns the latest frame into a PostureScore. Body angles are
computed locally; the qualitative part (score, issues, recommendations) comes
from an optional feedback service. When there is no service, or it fails,
a deterministic angle-threshold score is used so the tracker always gets a
value.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from .errors import ShapeMismatch
from .keypoint_window import (
    FEATURES_PER_FRAME,
    LEFT_HIP,
    LEFT_SHOULDER,
    NOSE,
    RIGHT_HIP,
    RIGHT_SHOULDER,
)

# ── Ideal ranges (degrees) ────────────────────────────────────────────────────
IDEAL_NECK_ANGLE_MIN         = 165.0
IDEAL_NECK_ANGLE_MAX         = 175.0
IDEAL_SPINE_ANGLE_MIN        = 170.0
IDEAL_SPINE_ANGLE_MAX        = 180.0
IDEAL_SHOULDER_ALIGNMENT_MAX = 5.0

# Labels for the coarse posture state passed to the feedback service
FORWARD_HEAD_NECK_ANGLE      = 150.0
SLOUCHING_SPINE_ANGLE        = 160.0
UNEVEN_SHOULDER_ALIGNMENT    = 15.0


class PostureStatus(Enum):
    EXCELLENT = "excellent"   # 90-100
    GOOD      = "good"        # 75-89
    FAIR      = "fair"        # 60-74
    POOR      = "poor"        # 0-59

    @classmethod
    def from_score(cls, score: int) -> "PostureStatus":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 75:
            return cls.GOOD
        if score >= 60:
            return cls.FAIR
        return cls.POOR


@dataclass(frozen=True)
class BodyAngles:
    neck: float                # nose vs shoulder midpoint, 180 = head straight above
    spine: float               # shoulder midpoint vs hip midpoint, 180 = upright
    shoulder_alignment: float  # |left_y - right_y| * 100, rough degrees


@dataclass(frozen=True)
class PostureFeedback:
    """What a qualitative feedback service returns."""
    score: int
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PostureScore:
    score: int
    status: PostureStatus
    issues: tuple[str, ...]
    recommendations: tuple[str, ...]
    angles: BodyAngles
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def create(
        cls,
        score: int,
        issues: Sequence[str],
        recommendations: Sequence[str],
        angles: BodyAngles,
    ) -> "PostureScore":
        """Clamp the score to [0, 100] and derive the status band from it."""
        score = int(min(max(score, 0), 100))
        return cls(
            score=score,
            status=PostureStatus.from_score(score),
            issues=tuple(issues),
            recommendations=tuple(recommendations),
            angles=angles,
        )

    def with_issue(self, issue: str) -> "PostureScore":
        return replace(self, issues=self.issues + (issue,))


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def _angle_at(x1, y1, x2, y2, x3, y3) -> float:
    """Angle in degrees at (x2, y2) between the rays to p1 and p3, in [0, 180]."""
    a1 = math.atan2(y1 - y2, x1 - x2)
    a2 = math.atan2(y3 - y2, x3 - x2)
    angle = math.degrees(a2 - a1)
    if angle < 0:
        angle += 360.0
    if angle > 180:
        angle = 360.0 - angle
    return angle


def _point(frame: np.ndarray, idx: int) -> tuple[float, float]:
    """(x, y) of one landmark from a [y, x] ordered frame."""
    return float(frame[idx * 2 + 1]), float(frame[idx * 2])


def _midpoint(frame: np.ndarray, idx_a: int, idx_b: int) -> tuple[float, float]:
    ax, ay = _point(frame, idx_a)
    bx, by = _point(frame, idx_b)
    return (ax + bx) / 2.0, (ay + by) / 2.0


def compute_body_angles(frame) -> BodyAngles:
    """frame : 34 values, [y, x] per COCO landmark."""
    frame = np.asarray(frame, dtype=np.float64).reshape(-1)
    if frame.shape[0] != FEATURES_PER_FRAME:
        raise ShapeMismatch(f"Expected {FEATURES_PER_FRAME} values, got {frame.shape[0]}")

    nose_x, nose_y = _point(frame, NOSE)
    neck_x, neck_y = _midpoint(frame, LEFT_SHOULDER, RIGHT_SHOULDER)
    hip_x, hip_y   = _midpoint(frame, LEFT_HIP, RIGHT_HIP)

    # Angles are measured against a point straight below the joint
    neck  = _angle_at(nose_x, nose_y, neck_x, neck_y, neck_x, neck_y + 0.1)
    spine = _angle_at(neck_x, neck_y, hip_x, hip_y, hip_x, hip_y + 0.1)

    left_shoulder_y  = frame[LEFT_SHOULDER * 2]
    right_shoulder_y = frame[RIGHT_SHOULDER * 2]
    shoulder_alignment = abs(left_shoulder_y - right_shoulder_y) * 100.0

    return BodyAngles(neck=neck, spine=spine, shoulder_alignment=float(shoulder_alignment))


def posture_state(angles: BodyAngles) -> str:
    if angles.neck < FORWARD_HEAD_NECK_ANGLE:
        return 'forward_head'
    if angles.spine < SLOUCHING_SPINE_ANGLE:
        return 'slouching'
    if angles.shoulder_alignment > UNEVEN_SHOULDER_ALIGNMENT:
        return 'uneven_shoulders'
    return 'good_posture'


def fallback_score(angles: BodyAngles) -> PostureScore:
    """
    Angle-threshold scoring: start at 100, deduct per deviation from the
    ideal ranges.
    """
    score = 100
    issues = []
    recommendations = []

    if angles.neck < IDEAL_NECK_ANGLE_MIN:
        score -= int((IDEAL_NECK_ANGLE_MIN - angles.neck) / 2)
        issues.append("Forward head posture")
        recommendations.append("Lift your chin up and pull your head back")

    if angles.spine < IDEAL_SPINE_ANGLE_MIN:
        score -= int((IDEAL_SPINE_ANGLE_MIN - angles.spine) / 2)
        issues.append("Slouching detected")
        recommendations.append("Straighten your back and sit upright")

    if angles.shoulder_alignment > IDEAL_SHOULDER_ALIGNMENT_MAX:
        score -= int(angles.shoulder_alignment - IDEAL_SHOULDER_ALIGNMENT_MAX)
        issues.append("Uneven shoulders")
        recommendations.append("Level your shoulders and relax")

    if not issues:
        issues.append("Good posture")
        recommendations.append("Keep maintaining this posture!")

    return PostureScore.create(score, issues, recommendations, angles)


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

FeedbackService = Callable[[BodyAngles, str], PostureFeedback]


class PostureAnalyzer:
    """
    Scores one keypoint frame.

    Parameters
    ----------
    service : FeedbackService | None
        Called with (angles, posture_state). Any exception, or a None
        service, falls back to fallback_score().
    logger : logging.Logger | None
    """

    def __init__(
        self,
        service: Optional[FeedbackService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._service = service
        self._log = logger or logging.getLogger(__name__)

    def analyze(self, frame) -> PostureScore:
        angles = compute_body_angles(frame)
        state = posture_state(angles)
        self._log.debug(
            "Angles - neck: %.1f, spine: %.1f, shoulder: %.1f (%s)",
            angles.neck,
            angles.spine,
            angles.shoulder_alignment,
            state,
        )

        if self._service is None:
            return fallback_score(angles)

        try:
            feedback = self._service(angles, state)
        except Exception as exc:
            self._log.warning("Posture feedback service failed, using fallback scoring: %s", exc)
            return fallback_score(angles)

        result = PostureScore.create(
            feedback.score,
            feedback.issues[:3],
            feedback.recommendations[:3],
            angles,
        )
        self._log.info("Posture feedback: score=%d, status=%s", result.score, result.status.value)
        return result
