"""
Unit tests for fall_detection.synthetic
"""
import numpy as np

from fall_detection.keypoint_window import FEATURES_PER_FRAME, WINDOW_SIZE
from fall_detection.synthetic import (
    describe_frame,
    fall_sequence,
    ground_frame,
    normal_frame,
    standing_frame,
    validate_frame,
)


class TestFrames:

    def test_all_generators_produce_valid_frames(self, rng):
        for frame in (normal_frame(rng), standing_frame(0.02, rng), ground_frame(rng)):
            assert frame.shape == (FEATURES_PER_FRAME,)
            assert frame.dtype == np.float32
            assert validate_frame(frame)

    def test_standing_frame_is_deterministic(self):
        assert np.array_equal(standing_frame(), standing_frame())

    def test_same_seed_same_frames(self):
        a = normal_frame(np.random.default_rng(7))
        b = normal_frame(np.random.default_rng(7))
        assert np.array_equal(a, b)

    def test_validate_rejects_bad_frames(self):
        assert not validate_frame(np.zeros(FEATURES_PER_FRAME - 2))
        assert not validate_frame(np.full(FEATURES_PER_FRAME, 1.5))

    def test_describe_names_every_landmark(self):
        text = describe_frame(standing_frame())
        assert "nose" in text
        assert "right_ankle" in text


class TestFallSequence:

    def test_shape(self, rng):
        frames = fall_sequence(rng)
        assert len(frames) == WINDOW_SIZE
        assert all(validate_frame(f) for f in frames)

    def test_body_ends_lower_than_it_starts(self, rng):
        frames = fall_sequence(rng)
        first_mean_y = frames[0][0::2].mean()
        last_mean_y = frames[-1][0::2].mean()
        assert last_mean_y > first_mean_y + 0.2
