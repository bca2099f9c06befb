# fall_detection/engines.py
"""
Concrete inference engines for SequenceClassifier.

Both take the [1, T, D] float32 window tensor and return a probability.
Model files are produced elsewhere; nothing here trains or ships weights.
"""

import logging
import pickle
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)


class PickledPipelineEngine:
    """
    A pickled scikit-learn style pipeline saved as
        {'pipeline': <estimator with predict_proba>, 'threshold': float}

    The window is flattened frame-major to [1, T*D] before predict_proba.
    """

    def __init__(self, model_path):
        model_path = Path(model_path)
        with open(model_path, 'rb') as f:
            saved = pickle.load(f)

        self.pipeline = saved['pipeline']
        self.threshold = saved.get('threshold', 0.5)
        logger.info("Loaded pickled pipeline from %s (threshold=%.2f)", model_path, self.threshold)

    def __call__(self, tensor: np.ndarray) -> float:
        x = np.asarray(tensor, dtype=np.float32).reshape(tensor.shape[0], -1)
        return float(self.pipeline.predict_proba(x)[0, 1])

    def close(self) -> None:
        self.pipeline = None


class OnnxSequenceEngine:
    """
    ONNX Runtime session for a recurrent model exported with a single
    [1, T, D] float32 input and a [1, 1] probability output.
    """

    def __init__(self, model_path, providers=None):
        import onnxruntime as ort   # optional extra, only needed for this engine

        self.session = ort.InferenceSession(
            str(model_path),
            providers=providers or ['CPUExecutionProvider'],
        )
        self.input_name = self.session.get_inputs()[0].name
        logger.info(
            "ONNX session ready | model=%s | input=%s %s",
            model_path,
            self.input_name,
            self.session.get_inputs()[0].shape,
        )

    def __call__(self, tensor: np.ndarray) -> float:
        output = self.session.run(None, {self.input_name: tensor.astype(np.float32)})
        return float(np.asarray(output[0]).reshape(-1)[0])

    def close(self) -> None:
        self.session = None
