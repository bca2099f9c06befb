"""
Unit tests for fall_detection.engines
"""
import pickle
import sys
from unittest.mock import MagicMock

import numpy as np
import pytest

from fall_detection.engines import OnnxSequenceEngine, PickledPipelineEngine
from fall_detection.keypoint_window import FEATURES_PER_FRAME, WINDOW_SIZE
from fall_detection.sequence_classifier import SequenceClassifier


class MeanPipeline:
    """predict_proba stand-in: fall probability is the mean feature value."""

    def predict_proba(self, x):
        p = float(np.mean(x))
        return np.array([[1.0 - p, p]])


@pytest.fixture
def model_path(tmp_path):
    path = tmp_path / "fall_model.pkl"
    with open(path, "wb") as f:
        pickle.dump({"pipeline": MeanPipeline(), "threshold": 0.6}, f)
    return path


class TestPickledPipelineEngine:

    def test_flattens_window_and_returns_positive_class(self, model_path):
        engine = PickledPipelineEngine(model_path)
        tensor = np.full((1, WINDOW_SIZE, FEATURES_PER_FRAME), 0.25, dtype=np.float32)
        assert engine(tensor) == pytest.approx(0.25)
        assert engine.threshold == 0.6

    def test_behind_classifier_adapter(self, model_path):
        classifier = SequenceClassifier(PickledPipelineEngine(model_path))
        window = np.full((WINDOW_SIZE, FEATURES_PER_FRAME), 0.9, dtype=np.float32)
        assert classifier.predict(window) == pytest.approx(0.9)
        classifier.close()


class TestOnnxSequenceEngine:

    def test_runs_session_with_window_tensor(self, monkeypatch):
        session = MagicMock()
        session.get_inputs.return_value = [MagicMock(shape=[1, WINDOW_SIZE, FEATURES_PER_FRAME])]
        session.get_inputs.return_value[0].name = "keypoints"
        session.run.return_value = [np.array([[0.77]], dtype=np.float32)]
        ort = MagicMock()
        ort.InferenceSession.return_value = session
        monkeypatch.setitem(sys.modules, "onnxruntime", ort)

        engine = OnnxSequenceEngine("model.onnx")
        tensor = np.zeros((1, WINDOW_SIZE, FEATURES_PER_FRAME), dtype=np.float32)

        assert engine(tensor) == pytest.approx(0.77)
        feeds = session.run.call_args[0][1]
        assert list(feeds) == ["keypoints"]
        assert feeds["keypoints"].dtype == np.float32
