# fall_detection/pose_estimator.py

import numpy as np

from .keypoint_window import FEATURES_PER_FRAME

# MediaPipe Pose index for each COCO-17 landmark, in COCO order.
MEDIAPIPE_TO_COCO = [
    0,        # nose
    2, 5,     # eyes
    7, 8,     # ears
    11, 12,   # shoulders
    13, 14,   # elbows
    15, 16,   # wrists
    23, 24,   # hips
    25, 26,   # knees
    27, 28,   # ankles
]

# Landmarks we actually need. If any of these are out of range or low
# visibility, the frame is unreliable and we return None.
_KEY_LANDMARKS = [11, 12, 23, 24, 25, 26]   # shoulders, hips, knees
_MIN_VISIBILITY = 0.4


def landmarks_to_keypoints(landmarks) -> np.ndarray:
    """
    [33, >=2] MediaPipe array (x, y, ...) → 34 float32 values, [y, x] per
    COCO landmark, clamped to [0, 1].
    """
    arr = np.asarray(landmarks, dtype=np.float32)
    coco = arr[MEDIAPIPE_TO_COCO, :2]
    keypoints = np.empty(FEATURES_PER_FRAME, dtype=np.float32)
    keypoints[0::2] = coco[:, 1]   # y
    keypoints[1::2] = coco[:, 0]   # x
    return np.clip(keypoints, 0.0, 1.0)


def is_reliable(landmarks) -> bool:
    # MediaPipe can extrapolate landmarks outside [0,1] when the person
    # moves near the frame edge or very fast.
    arr = np.asarray(landmarks, dtype=np.float32)
    for idx in _KEY_LANDMARKS:
        x, y, _, vis = arr[idx]
        if vis < _MIN_VISIBILITY:
            return False
        if not (0.0 <= x <= 1.0) or not (0.0 <= y <= 1.0):
            return False
    return True


class PoseEstimator:
    """
    Frame source adapter: BGR camera frame in, one keypoint frame out.

    Needs the `camera` extra (mediapipe, opencv-python).
    """

    def __init__(self, model_complexity: int = 1, min_confidence: float = 0.5):
        import mediapipe as mp

        self.mp_pose = mp.solutions.pose
        self.pose = self.mp_pose.Pose(
            static_image_mode=False,
            model_complexity=model_complexity,
            min_detection_confidence=min_confidence,
            min_tracking_confidence=min_confidence,
        )

    def process_frame(self, frame_bgr):
        """
        Returns a 34-value keypoint frame, or None if no pose was found or
        the key landmarks are unreliable.
        """
        import cv2

        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self.pose.process(rgb)

        if not results.pose_landmarks:
            return None

        lm  = results.pose_landmarks.landmark
        arr = np.array([[p.x, p.y, p.z, p.visibility] for p in lm])

        if not is_reliable(arr):
            return None
        return landmarks_to_keypoints(arr)

    def close(self):
        self.pose.close()
