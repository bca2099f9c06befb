# run_monitor.py
"""
Run a monitoring session from a camera, a video file or synthetic keypoints.

    python run_monitor.py --source 0 --model fall_model.pkl
    python run_monitor.py --synthetic fall --config config.json

Falls start the emergency countdown; when it runs out the alert draft is
printed to the console for you to send. Press Ctrl+C to quit.
"""

import argparse
import logging
import time

import numpy as np

from fall_detection import DecisionMode, MonitoringSession, ProbabilityFusion, SequenceClassifier
from fall_detection.synthetic import fall_sequence, ground_frame, normal_sequence
from response import (
    AlertComposer,
    ConsoleComposer,
    EmergencyEscalation,
    LoggingHaptics,
    SpeechService,
    StaticLocationProvider,
    ToneHaptics,
    load_settings,
)

logger = logging.getLogger(__name__)

FRAME_PERIOD = 1.0 / 30


class ConsoleObserver:
    def on_tick(self, remaining):
        print(f"  Emergency message in {remaining}s (Ctrl+C to cancel)")

    def on_timeout(self):
        print("  Countdown finished.")

    def on_cancel(self):
        print("  Countdown cancelled.")


def build_classifier(model_path):
    if model_path is None:
        logger.warning("No --model given; deciding on the rule score alone")
        fusion = ProbabilityFusion(model_weight=0.0, rule_weight=1.0)
        return SequenceClassifier(lambda tensor: 0.0), DecisionMode.FUSED, fusion

    if str(model_path).endswith('.onnx'):
        from fall_detection.engines import OnnxSequenceEngine
        engine = OnnxSequenceEngine(model_path)
    else:
        from fall_detection.engines import PickledPipelineEngine
        engine = PickledPipelineEngine(model_path)
    return SequenceClassifier(engine), DecisionMode.EITHER, ProbabilityFusion()


def run_synthetic(session, kind):
    rng = np.random.default_rng()
    frames = normal_sequence(rng)
    if kind == 'fall':
        frames += fall_sequence(rng) + [ground_frame(rng) for _ in range(60)]
    else:
        frames += normal_sequence(rng, length=90)

    for frame in frames:
        session.add_frame(frame)
        time.sleep(FRAME_PERIOD)


def run_camera(session, source):
    import cv2
    from fall_detection.pose_estimator import PoseEstimator

    estimator = PoseEstimator()
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        print(f"ERROR: Could not open source: {source}")
        return

    print("Running. Press Ctrl+C to quit")
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                print("Video ended." if isinstance(source, str) else "Webcam read failed.")
                break
            keypoints = estimator.process_frame(frame)
            if keypoints is not None:
                session.add_frame(keypoints)
    finally:
        cap.release()
        estimator.close()


def main():
    parser = argparse.ArgumentParser(description='Fall and posture monitoring')
    parser.add_argument('--source', default='0', help='camera index or video path')
    parser.add_argument('--synthetic', choices=['fall', 'normal'], help='use generated keypoints instead of a camera')
    parser.add_argument('--model', help='.pkl pipeline or .onnx sequence model')
    parser.add_argument('--config', default='config.json', help='alert settings JSON')
    parser.add_argument('--quiet', action='store_true', help='no speech or tones')
    args = parser.parse_args()

    settings = load_settings(args.config)
    classifier, mode, fusion = build_classifier(args.model)

    escalation = EmergencyEscalation(
        settings,
        composer=AlertComposer(ConsoleComposer(), StaticLocationProvider()),
        speech=None if args.quiet else SpeechService(),
        haptics=LoggingHaptics() if args.quiet else ToneHaptics(),
        observer=ConsoleObserver(),
    )
    session = MonitoringSession(
        classifier,
        escalation=escalation,
        fusion=fusion,
        decision_mode=mode,
        on_fall=lambda d: print(f"*** FALL DETECTED *** fused={d.fusion.final_probability:.2f}"),
        on_posture_event=lambda e: print(f"Sustained {e.status.value} posture: {', '.join(e.analysis.issues)}"),
    )

    session.start()
    try:
        if args.synthetic:
            run_synthetic(session, args.synthetic)
            # let a countdown started by the synthetic fall play out
            while escalation.is_running:
                time.sleep(0.5)
            escalation.join()
        else:
            source = int(args.source) if args.source.isdigit() else args.source
            run_camera(session, source)
    except KeyboardInterrupt:
        print("\nStopping.")
    finally:
        summary = session.stop()
        classifier.close()
        print(f"Session: {summary.duration_seconds}s, falls detected: {summary.fall_count}")


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    main()
