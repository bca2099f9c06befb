"""
response/haptics.py

Short physical cues during the countdown.

On a phone this is a vibration motor; on a desktop the closest thing is a
brief tone through the default output device. Durations are in
milliseconds.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)

TICK_PULSE_MS  = 80
LONG_PULSE_MS  = 300


class Haptics(Protocol):
    def pulse(self, duration_ms: int) -> None: ...


class ToneHaptics:
    """
    Plays a sine burst per pulse via sounddevice. Non-blocking: play()
    returns immediately and the next pulse simply replaces the current one.

    Parameters
    ----------
    frequency : float
        Tone frequency in Hz.
    volume : float
        Amplitude from 0.0 to 1.0.
    sample_rate : int
        Output sample rate.
    """

    def __init__(self, frequency: float = 660.0, volume: float = 0.3, sample_rate: int = 44100):
        self.frequency = frequency
        self.volume = volume
        self.sample_rate = sample_rate

    def pulse(self, duration_ms: int) -> None:
        import sounddevice as sd

        samples = int(self.sample_rate * duration_ms / 1000)
        t = np.arange(samples, dtype=np.float32) / self.sample_rate
        tone = (self.volume * np.sin(2 * np.pi * self.frequency * t)).astype(np.float32)
        logger.debug("Haptic pulse %d ms", duration_ms)
        sd.play(tone, self.sample_rate)

    def stop(self) -> None:
        import sounddevice as sd

        sd.stop()


class LoggingHaptics:
    """Pulse sink for headless runs: logs each pulse and keeps the durations."""

    def __init__(self):
        self.pulses: list[int] = []

    def pulse(self, duration_ms: int) -> None:
        self.pulses.append(duration_ms)
        logger.debug("Haptic pulse %d ms (logged only)", duration_ms)
