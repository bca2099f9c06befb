"""
Spoken announcements for the emergency countdown.

Flow:
    1. The countdown calls speak() for its initial prompt, reminders and
       final warning
    2. Each message is queued and spoken by one background worker, so the
       countdown thread never waits on the speech engine
    3. stop() drops anything not yet spoken; a message already being spoken
       is allowed to finish

Dependencies:
    pip install pyttsx3
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Protocol

import pyttsx3

logger = logging.getLogger(__name__)


class Speech(Protocol):
    def speak(self, message: str) -> None: ...
    def stop(self) -> None: ...
    def resume(self) -> None: ...


class SpeechService:
    """
    Queued, offline text-to-speech.

    Parameters
    ----------
    tts_rate : int
        Speech rate for pyttsx3 in words-per-minute.
        Lower values are clearer for elderly users. Default: 145.

    tts_volume : float
        TTS volume from 0.0 to 1.0. Default: 1.0 (maximum).
    """

    def __init__(self, tts_rate: int = 145, tts_volume: float = 1.0):
        self._tts_rate = tts_rate
        self._tts_volume = tts_volume
        self._tts_voice_id: str | None = None  # set during _init_tts

        self._queue: queue.Queue[str | None] = queue.Queue()
        self._accepting = threading.Event()
        self._accepting.set()

        self._init_tts()

        self._worker = threading.Thread(target=self._run, name="speech-worker", daemon=True)
        self._worker.start()
        logger.info("SpeechService initialized | rate=%d", self._tts_rate)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def speak(self, message: str) -> None:
        """Queue a message. Ignored after stop() until resume()."""
        if not self._accepting.is_set():
            logger.debug("Speech stopped, dropping: %s", message)
            return
        self._queue.put(message)

    def stop(self) -> None:
        """Drop queued messages and refuse new ones."""
        self._accepting.clear()
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
                dropped += 1
            except queue.Empty:
                break
        if dropped:
            logger.debug("Dropped %d queued announcement(s)", dropped)

    def resume(self) -> None:
        self._accepting.set()

    def shutdown(self) -> None:
        self.stop()
        self._queue.put(None)
        self._worker.join(timeout=5)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            if message is None:
                return
            self._say(message)

    def _say(self, message: str) -> None:
        """
        A fresh engine is created for each message. This works around a
        known macOS bug where pyttsx3 silently fails on runAndWait() calls
        after the first one when reusing the same engine instance.
        """
        logger.info("Speaking: %s", message)
        try:
            engine = pyttsx3.init()
            engine.setProperty("rate", self._tts_rate)
            engine.setProperty("volume", self._tts_volume)
            if self._tts_voice_id:
                engine.setProperty("voice", self._tts_voice_id)
            engine.say(message)
            engine.runAndWait()
            engine.stop()
        except Exception as exc:
            logger.error("TTS failed: %s", exc, exc_info=True)

    def _init_tts(self) -> None:
        """Probe pyttsx3 once to find and store the preferred voice ID."""
        try:
            engine = pyttsx3.init()
            voices = engine.getProperty("voices")
            for voice in voices:
                if "female" in voice.name.lower() or "zira" in voice.name.lower():
                    self._tts_voice_id = voice.id
                    logger.debug("Preferred TTS voice: %s", voice.name)
                    break
            engine.stop()
        except Exception as exc:
            logger.debug("Could not probe TTS voices: %s", exc)
