# fall_detection/__init__.py
"""
fall_detection
==============
Fall and sustained-bad-posture detection from a stream of keypoint frames.

Public API
----------
MonitoringSession   — main entry point; feed it keypoint frames
FallDecision        — dataclass produced for every evaluated window
SessionSummary      — returned by MonitoringSession.stop()

Individual components (use directly only if you need fine-grained control):
KeypointWindow      — fixed-size sliding buffer of T=30 frames x D=34 values
SequenceClassifier  — adapter around an opaque sequence-model engine
RuleScorer          — deterministic lying/ground/stillness heuristic
ProbabilityFusion   — weighted combination of model probability and rule score
PostureAnalyzer     — body angles + posture score for a single frame
PostureStateTracker — flags posture that stays bad for a sustained period

Typical usage
-------------
    from fall_detection import MonitoringSession, SequenceClassifier
    from fall_detection.engines import PickledPipelineEngine

    classifier = SequenceClassifier(PickledPipelineEngine('fall_model.pkl'))
    session = MonitoringSession(classifier, on_fall=print)
    session.start()

    for keypoints in frame_source:        # 34 floats per frame, [y, x] order
        session.add_frame(keypoints)

    summary = session.stop()
    classifier.close()
"""

from .errors import (
    AlertsDisabled,
    AlertSkipped,
    InferenceFailure,
    InvalidConfiguration,
    LocationUnavailable,
    NoRecipients,
    ShapeMismatch,
    WindowNotReady,
)
from .fusion             import FusionResult, ProbabilityFusion
from .keypoint_window    import FEATURES_PER_FRAME, WINDOW_SIZE, KeypointWindow
from .pipeline           import DecisionMode, FallDecision, MonitoringSession, SessionSummary
from .posture            import PostureAnalyzer, PostureScore, PostureStatus
from .posture_tracker    import PostureStateTracker, SustainedPostureEvent
from .rule_scorer        import RuleScorer
from .sequence_classifier import ClassifierResult, SequenceClassifier

__all__ = [
    'MonitoringSession',
    'FallDecision',
    'SessionSummary',
    'DecisionMode',
    'KeypointWindow',
    'SequenceClassifier',
    'ClassifierResult',
    'RuleScorer',
    'ProbabilityFusion',
    'FusionResult',
    'PostureAnalyzer',
    'PostureScore',
    'PostureStatus',
    'PostureStateTracker',
    'SustainedPostureEvent',
    'WINDOW_SIZE',
    'FEATURES_PER_FRAME',
    'ShapeMismatch',
    'WindowNotReady',
    'InvalidConfiguration',
    'InferenceFailure',
    'LocationUnavailable',
    'AlertSkipped',
    'AlertsDisabled',
    'NoRecipients',
]

__version__ = '0.1.0'
