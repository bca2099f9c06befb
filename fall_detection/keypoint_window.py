# fall_detection/keypoint_window.py

import logging
import threading
from collections import deque
from typing import List, Optional

import numpy as np

from .errors import ShapeMismatch, WindowNotReady


# ── Model input geometry ──────────────────────────────────────────────────────
# 17 COCO landmarks x 2 normalised coords, 30 frames ≈ 1 s at 30 fps.
NUM_KEYPOINTS = 17
FEATURES_PER_FRAME = NUM_KEYPOINTS * 2   # D
WINDOW_SIZE = 30                          # T

# COCO landmark order. Frames store [y, x] per landmark, so landmark k lives
# at indices 2k (y) and 2k + 1 (x).
NOSE            = 0
LEFT_EYE        = 1
RIGHT_EYE       = 2
LEFT_EAR        = 3
RIGHT_EAR       = 4
LEFT_SHOULDER   = 5
RIGHT_SHOULDER  = 6
LEFT_ELBOW      = 7
RIGHT_ELBOW     = 8
LEFT_WRIST      = 9
RIGHT_WRIST     = 10
LEFT_HIP        = 11
RIGHT_HIP       = 12
LEFT_KNEE       = 13
RIGHT_KNEE      = 14
LEFT_ANKLE      = 15
RIGHT_ANKLE     = 16

KEYPOINT_NAMES = [
    'nose', 'left_eye', 'right_eye', 'left_ear', 'right_ear',
    'left_shoulder', 'right_shoulder', 'left_elbow', 'right_elbow',
    'left_wrist', 'right_wrist', 'left_hip', 'right_hip',
    'left_knee', 'right_knee', 'left_ankle', 'right_ankle',
]


class KeypointWindow:
    """
    Thread-safe sliding window of keypoint frames.

    Holds the most recent `window_size` frames (FIFO). The window is "ready"
    once exactly `window_size` frames are held and stays ready under further
    adds because eviction keeps it full.

    Two read modes:
      strict   — to_tensor(strict=True) raises WindowNotReady until ready
      tolerant — to_tensor() zero-pads the missing LEADING frames, so the
                 newest frame is always the last row

    Every method takes the same lock, so a reader never sees a half-evicted
    window.
    """

    def __init__(
        self,
        window_size: int = WINDOW_SIZE,
        features_per_frame: int = FEATURES_PER_FRAME,
        logger: Optional[logging.Logger] = None,
    ):
        self.window_size = window_size
        self.features_per_frame = features_per_frame
        self._log = logger or logging.getLogger(__name__)

        self._frames = deque(maxlen=window_size)
        self._lock = threading.Lock()

    # ── Writes ────────────────────────────────────────────────────────────────

    def add(self, frame) -> None:
        """
        frame : sequence of `features_per_frame` floats.
        Raises ShapeMismatch on a wrong length; the window is left untouched.
        """
        arr = np.array(frame, dtype=np.float32).reshape(-1)
        if arr.shape[0] != self.features_per_frame:
            raise ShapeMismatch(
                f"Each frame must have {self.features_per_frame} features "
                f"({self.features_per_frame // 2} keypoints x 2 coords), got {arr.shape[0]}"
            )

        with self._lock:
            # deque(maxlen) drops the oldest frame in O(1)
            self._frames.append(arr)

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()
        self._log.debug("KeypointWindow cleared")

    # ── Reads ─────────────────────────────────────────────────────────────────

    def is_ready(self) -> bool:
        with self._lock:
            return len(self._frames) == self.window_size

    def size(self) -> int:
        with self._lock:
            return len(self._frames)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._frames

    def to_tensor(self, strict: bool = False) -> np.ndarray:
        """
        Returns a fresh float32 array of shape [T, D], oldest frame first.

        strict=False : missing leading rows are zeros
        strict=True  : raises WindowNotReady unless is_ready()
        """
        with self._lock:
            count = len(self._frames)
            if strict and count != self.window_size:
                raise WindowNotReady(
                    f"Window must be full ({self.window_size} frames) before a strict read, "
                    f"current size: {count}"
                )

            tensor = np.zeros((self.window_size, self.features_per_frame), dtype=np.float32)
            if count:
                tensor[self.window_size - count:] = np.stack(self._frames)

        if count < self.window_size:
            self._log.debug("Window read with %d/%d frames, zero-padded", count, self.window_size)
        return tensor

    def frames(self) -> List[np.ndarray]:
        """Copies of the held frames, oldest first."""
        with self._lock:
            return [f.copy() for f in self._frames]

    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frames[-1].copy() if self._frames else None

    def oldest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frames[0].copy() if self._frames else None

    def fill_percentage(self) -> int:
        with self._lock:
            return (len(self._frames) * 100) // self.window_size

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        with self._lock:
            count = len(self._frames)
        return (f"KeypointWindow(size={count}/{self.window_size}, "
                f"fill={(count * 100) // self.window_size}%)")
