"""
response/settings.py

Alert settings and emergency contacts, persisted as a small JSON document.

The escalation countdown only ever reads these values. The monitored
user's display name can also come from MONITOR_USER_NAME in the .env file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

MIN_TIMER_SECONDS     = 10
MAX_TIMER_SECONDS     = 30
DEFAULT_TIMER_SECONDS = 15
MAX_CONTACTS          = 3
DEFAULT_USER_NAME     = "User"


@dataclass(frozen=True)
class EmergencyContact:
    name: str   # display name, shown in the composed draft
    phone: str  # any dialable format, passed through untouched


def clamp_timer(seconds: int) -> int:
    return int(min(max(seconds, MIN_TIMER_SECONDS), MAX_TIMER_SECONDS))


@dataclass
class AlertSettings:
    """
    Parameters
    ----------
    sms_enabled : bool
        Compose an alert message when the countdown runs out.
    gps_enabled : bool
        Include the last known location in the message.
    timer_duration_seconds : int
        Countdown length, clamped to [10, 30].
    contacts : list[EmergencyContact]
        At most 3; extras are dropped with a warning.
    user_name : str
        Name of the monitored person, used in the message preamble.
    """
    sms_enabled: bool = True
    gps_enabled: bool = True
    timer_duration_seconds: int = DEFAULT_TIMER_SECONDS
    contacts: list[EmergencyContact] = field(default_factory=list)
    user_name: str = DEFAULT_USER_NAME

    def __post_init__(self):
        self.timer_duration_seconds = clamp_timer(self.timer_duration_seconds)
        if len(self.contacts) > MAX_CONTACTS:
            logger.warning(
                "Only %d emergency contacts are supported; dropping %d",
                MAX_CONTACTS,
                len(self.contacts) - MAX_CONTACTS,
            )
            self.contacts = list(self.contacts[:MAX_CONTACTS])

    def add_contact(self, contact: EmergencyContact) -> bool:
        """Returns False when the list is already full."""
        if len(self.contacts) >= MAX_CONTACTS:
            logger.info("Contact list full, not adding %s", contact.name)
            return False
        self.contacts.append(contact)
        return True

    def remove_contact(self, phone: str) -> bool:
        before = len(self.contacts)
        self.contacts = [c for c in self.contacts if c.phone != phone]
        return len(self.contacts) < before

    def set_timer(self, seconds: int) -> None:
        self.timer_duration_seconds = clamp_timer(seconds)

    @property
    def has_contacts(self) -> bool:
        return bool(self.contacts)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AlertSettings":
        contacts = [
            EmergencyContact(name=str(c.get("name", "")), phone=str(c.get("phone", "")))
            for c in data.get("contacts", [])
        ]
        return cls(
            sms_enabled=bool(data.get("sms_enabled", True)),
            gps_enabled=bool(data.get("gps_enabled", True)),
            timer_duration_seconds=int(data.get("timer_duration_seconds", DEFAULT_TIMER_SECONDS)),
            contacts=contacts,
            user_name=str(data.get("user_name", DEFAULT_USER_NAME)),
        )


def load_settings(path: str | Path | None = None, dotenv_path: str | None = None) -> AlertSettings:
    """
    Read settings from a JSON file. A missing file gives the defaults.

    MONITOR_USER_NAME from the .env file overrides the stored user_name.
    """
    load_dotenv(dotenv_path=dotenv_path)

    settings = AlertSettings()
    if path is not None and Path(path).exists():
        with open(path, "r", encoding="utf-8") as f:
            settings = AlertSettings.from_dict(json.load(f))
        logger.info("Settings loaded from %s", path)
    elif path is not None:
        logger.info("No settings file at %s, using defaults", path)

    env_name = os.environ.get("MONITOR_USER_NAME", "")
    if env_name:
        settings.user_name = env_name

    return settings


def save_settings(settings: AlertSettings, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    logger.info("Settings saved to %s", path)
