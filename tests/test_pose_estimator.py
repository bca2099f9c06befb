"""
Unit tests for the landmark mapping in fall_detection.pose_estimator.
PoseEstimator itself needs a camera frame and MediaPipe, so only the pure
helpers are covered here.
"""
import numpy as np
import pytest

from fall_detection.keypoint_window import LEFT_HIP, NOSE, RIGHT_ANKLE
from fall_detection.pose_estimator import MEDIAPIPE_TO_COCO, is_reliable, landmarks_to_keypoints


@pytest.fixture
def landmarks():
    # x = index / 100, y = index / 50, visibility 1
    arr = np.zeros((33, 4), dtype=np.float32)
    arr[:, 0] = np.arange(33) / 100.0
    arr[:, 1] = np.arange(33) / 50.0
    arr[:, 3] = 1.0
    return arr


class TestLandmarkMapping:

    def test_seventeen_coco_landmarks(self):
        assert len(MEDIAPIPE_TO_COCO) == 17

    def test_y_first_order(self, landmarks):
        keypoints = landmarks_to_keypoints(landmarks)
        assert keypoints.shape == (34,)
        assert keypoints[NOSE * 2] == pytest.approx(0.0)
        # COCO left hip is MediaPipe 23
        assert keypoints[LEFT_HIP * 2] == pytest.approx(23 / 50.0)
        assert keypoints[LEFT_HIP * 2 + 1] == pytest.approx(0.23)

    def test_values_are_clamped(self, landmarks):
        landmarks[28, 1] = 1.4    # right ankle below the frame edge
        landmarks[0, 0] = -0.3    # nose left of the frame
        keypoints = landmarks_to_keypoints(landmarks)
        assert keypoints[RIGHT_ANKLE * 2] == 1.0
        assert keypoints[NOSE * 2 + 1] == 0.0
        assert keypoints.min() >= 0.0


class TestReliability:

    def test_visible_in_frame(self, landmarks):
        landmarks[:, 1] = 0.5
        assert is_reliable(landmarks)

    def test_low_visibility_rejected(self, landmarks):
        landmarks[:, 1] = 0.5
        landmarks[23, 3] = 0.1
        assert not is_reliable(landmarks)

    def test_out_of_frame_rejected(self, landmarks):
        landmarks[:, 1] = 0.5
        landmarks[11, 0] = -0.2
        assert not is_reliable(landmarks)
