# fall_detection/synthetic.py
"""
Synthetic keypoint frames for exercising the pipeline without a camera.

All frames are 34 values, [y, x] per COCO landmark, normalised to [0, 1],
y = 0 at the top of the image.
"""

from typing import List, Optional

import numpy as np

from .keypoint_window import FEATURES_PER_FRAME, KEYPOINT_NAMES, NUM_KEYPOINTS, WINDOW_SIZE

# Upright person facing the camera, roughly centred: (y, x) per landmark.
_STANDING_POSE = np.array([
    (0.12, 0.50),                  # nose
    (0.10, 0.48), (0.10, 0.52),    # eyes
    (0.11, 0.46), (0.11, 0.54),    # ears
    (0.22, 0.42), (0.22, 0.58),    # shoulders
    (0.36, 0.40), (0.36, 0.60),    # elbows
    (0.48, 0.40), (0.48, 0.60),    # wrists
    (0.50, 0.45), (0.50, 0.55),    # hips
    (0.70, 0.45), (0.70, 0.55),    # knees
    (0.90, 0.45), (0.90, 0.55),    # ankles
], dtype=np.float32)


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def normal_frame(rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Gaussian noise around 0.5 (sd 0.1), clipped. Stands in for training data."""
    values = _rng(rng).normal(0.5, 0.1, FEATURES_PER_FRAME)
    return np.clip(values, 0.0, 1.0).astype(np.float32)


def standing_frame(jitter: float = 0.0, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Anatomically plausible upright pose, optionally jittered."""
    frame = _STANDING_POSE.reshape(-1).copy()
    if jitter > 0.0:
        frame += _rng(rng).uniform(-jitter, jitter, FEATURES_PER_FRAME).astype(np.float32)
    return np.clip(frame, 0.0, 1.0)


def ground_frame(rng: Optional[np.random.Generator] = None, noise: float = 0.05) -> np.ndarray:
    """Body lying across the floor: similar y for every landmark, x spread out."""
    rng = _rng(rng)
    ground_y = 0.75 + rng.random() * noise
    frame = np.zeros(FEATURES_PER_FRAME, dtype=np.float32)
    for i in range(NUM_KEYPOINTS):
        frame[i * 2]     = ground_y + rng.random() * noise
        frame[i * 2 + 1] = 0.3 + (i / NUM_KEYPOINTS) * 0.4 + rng.random() * noise
    return np.clip(frame, 0.0, 1.0)


def fall_sequence(rng: Optional[np.random.Generator] = None, length: int = WINDOW_SIZE) -> List[np.ndarray]:
    """
    standing → falling → on the ground, split into thirds.

    The middle third drifts every landmark from y≈0.3 down to y≈0.8.
    """
    rng = _rng(rng)
    third = length // 3
    frames = [standing_frame(jitter=0.01, rng=rng) for _ in range(third)]

    for t in range(third):
        progress = t / third
        frame = np.zeros(FEATURES_PER_FRAME, dtype=np.float32)
        for i in range(NUM_KEYPOINTS):
            frame[i * 2]     = 0.3 + progress * 0.5 + rng.random() * 0.05
            frame[i * 2 + 1] = 0.5 + rng.random() * 0.1 - 0.05
        frames.append(np.clip(frame, 0.0, 1.0))

    while len(frames) < length:
        frames.append(ground_frame(rng))
    return frames


def normal_sequence(rng: Optional[np.random.Generator] = None, length: int = WINDOW_SIZE) -> List[np.ndarray]:
    rng = _rng(rng)
    return [standing_frame(jitter=0.01, rng=rng) for _ in range(length)]


def validate_frame(frame) -> bool:
    """True if the frame has 34 values, all within [0, 1]."""
    arr = np.asarray(frame, dtype=np.float32).reshape(-1)
    return arr.shape[0] == FEATURES_PER_FRAME and bool(np.all((arr >= 0.0) & (arr <= 1.0)))


def describe_frame(frame) -> str:
    arr = np.asarray(frame, dtype=np.float32).reshape(-1)
    lines = [f"Keypoints ({arr.shape[0]} values):"]
    for i, name in enumerate(KEYPOINT_NAMES):
        lines.append(f"  {name}: y={arr[i * 2]:.3f}, x={arr[i * 2 + 1]:.3f}")
    return "\n".join(lines)
