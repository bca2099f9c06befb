"""
Unit tests for fall_detection.sequence_classifier
"""
import logging
from unittest.mock import MagicMock

import numpy as np
import pytest

from fall_detection.errors import ShapeMismatch
from fall_detection.keypoint_window import FEATURES_PER_FRAME, WINDOW_SIZE
from fall_detection.sequence_classifier import SAFE_DEFAULT_PROBABILITY, SequenceClassifier


@pytest.fixture
def window():
    return np.full((WINDOW_SIZE, FEATURES_PER_FRAME), 0.5, dtype=np.float32)


class TestPredict:

    def test_engine_receives_batched_float32_tensor(self, window):
        engine = MagicMock(return_value=0.42)
        classifier = SequenceClassifier(engine)

        assert classifier.predict(window) == pytest.approx(0.42)
        tensor = engine.call_args[0][0]
        assert tensor.shape == (1, WINDOW_SIZE, FEATURES_PER_FRAME)
        assert tensor.dtype == np.float32

    def test_accepts_already_batched_window(self, window):
        engine = MagicMock(return_value=np.array([[0.3]]))
        classifier = SequenceClassifier(engine)
        assert classifier.predict(window[np.newaxis, ...]) == pytest.approx(0.3)

    def test_output_is_clamped(self, window):
        assert SequenceClassifier(lambda t: 1.7).predict(window) == 1.0
        assert SequenceClassifier(lambda t: -0.2).predict(window) == 0.0

    def test_wrong_shape_raises(self):
        classifier = SequenceClassifier(MagicMock(return_value=0.5))
        with pytest.raises(ShapeMismatch):
            classifier.predict(np.zeros((10, FEATURES_PER_FRAME)))


class TestFailureRecovery:

    def test_engine_exception_returns_safe_default(self, window, caplog):
        engine = MagicMock(side_effect=RuntimeError("delegate crashed"))
        classifier = SequenceClassifier(engine)

        with caplog.at_level(logging.ERROR):
            p = classifier.predict(window)

        assert p == SAFE_DEFAULT_PROBABILITY
        assert "delegate crashed" in caplog.text

    @pytest.mark.parametrize("raw", [float("nan"), np.array([])])
    def test_garbage_output_returns_safe_default(self, window, raw):
        classifier = SequenceClassifier(lambda t: raw)
        assert classifier.predict(window) == SAFE_DEFAULT_PROBABILITY

    def test_injected_logger_is_used(self, window):
        log = MagicMock(spec=logging.Logger)
        classifier = SequenceClassifier(MagicMock(side_effect=ValueError("x")), logger=log)
        classifier.predict(window)
        assert log.error.called


class TestAlarm:

    def test_raw_threshold_is_strict(self):
        classifier = SequenceClassifier(lambda t: 0.0)
        assert not classifier.is_alarm(0.85)
        assert classifier.is_alarm(0.851)

    def test_predict_with_result(self, window):
        result = SequenceClassifier(lambda t: 0.95).predict_with_result(window)
        assert result.is_fall
        assert result.status == "FALL DETECTED"
        assert result.probability_percent == "95%"

        result = SequenceClassifier(lambda t: 0.05).predict_with_result(window)
        assert not result.is_fall
        assert result.status == "NO FALL"

    def test_close_forwards_to_engine(self):
        engine = MagicMock(return_value=0.1)
        SequenceClassifier(engine).close()
        engine.close.assert_called_once()
