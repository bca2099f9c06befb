"""
response/__init__.py

Public interface for the response module.

Usage
-----
    from response import EmergencyEscalation, AlertSettings, EmergencyContact
    from response import AlertComposer, ConsoleComposer, StaticLocationProvider
    from response import SpeechService, ToneHaptics
"""

from response.settings import AlertSettings, EmergencyContact, load_settings, save_settings
from response.emergency_alert import (
    AlertComposer,
    AlertDraft,
    ConsoleComposer,
    IpLocationProvider,
    Location,
    RecordingComposer,
    StaticLocationProvider,
    build_alert_message,
)
from response.escalation import CountdownState, EmergencyEscalation, EscalationObserver
from response.haptics import LoggingHaptics, ToneHaptics
from response.voice_assistant import SpeechService

__all__ = [
    # Primary entry point, started by the monitoring session on a fall
    "EmergencyEscalation",
    "CountdownState",
    "EscalationObserver",
    # Settings read by the countdown
    "AlertSettings",
    "EmergencyContact",
    "load_settings",
    "save_settings",
    # Message composition (never sends)
    "AlertComposer",
    "AlertDraft",
    "ConsoleComposer",
    "RecordingComposer",
    "build_alert_message",
    "Location",
    "StaticLocationProvider",
    "IpLocationProvider",
    # Side-effect capabilities
    "SpeechService",
    "ToneHaptics",
    "LoggingHaptics",
]
