# emergency alert message composition for the fall detection system.

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Protocol
from urllib.parse import quote

import httpx
from dotenv import load_dotenv

from fall_detection.errors import AlertSkipped, AlertsDisabled, LocationUnavailable, NoRecipients
from response.settings import AlertSettings

# Logging
logger = logging.getLogger(__name__)

PLACEHOLDER_DISABLED   = "location disabled"
PLACEHOLDER_PERMISSION = "unknown (GPS permission missing)"
PLACEHOLDER_UNKNOWN    = "unknown"

DEFAULT_LOCATION_TIMEOUT = 5.0


# Data classes
@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    accuracy_m: float = 0.0  # radius of the uncertainty circle

    def as_text(self) -> str:
        return f"{self.latitude:.4f}, {self.longitude:.4f} (±{int(round(self.accuracy_m))} m)"

    def map_link(self) -> str:
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"


@dataclass(frozen=True)
class AlertDraft:
    recipients: tuple[str, ...]  # phone numbers, in contact order
    body: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def recipient_string(self) -> str:
        return ";".join(self.recipients)

    @property
    def sms_uri(self) -> str:
        """smsto: URI that opens a messaging app with everything pre-filled."""
        return f"smsto:{self.recipient_string}?body={quote(self.body)}"


# Capabilities
class LocationProvider(Protocol):
    def has_permission(self) -> bool: ...
    def last_known_location(self) -> Optional[Location]: ...


class MessageComposer(Protocol):
    def compose(self, draft: AlertDraft) -> None: ...


# Location providers
class StaticLocationProvider:
    """
    Fixed coordinates, e.g. the monitored person's home.

    Reads HOME_LATITUDE / HOME_LONGITUDE from the .env file when the
    coordinates are not passed in. Without coordinates it reports no
    permission, so the message says the location is unknown.
    """

    def __init__(
        self,
        latitude: float | None = None,
        longitude: float | None = None,
        accuracy_m: float = 0.0,
        dotenv_path: str | None = None,
    ):
        if latitude is None or longitude is None:
            load_dotenv(dotenv_path=dotenv_path)
            lat = os.environ.get("HOME_LATITUDE", "")
            lon = os.environ.get("HOME_LONGITUDE", "")
            if lat and lon:
                latitude, longitude = float(lat), float(lon)

        self._location = (
            Location(latitude, longitude, accuracy_m)
            if latitude is not None and longitude is not None
            else None
        )

    def has_permission(self) -> bool:
        return self._location is not None

    def last_known_location(self) -> Optional[Location]:
        return self._location


class IpLocationProvider:
    """
    Coarse location from a public IP geolocation endpoint. One request per
    lookup, no retries.

    Parameters
    ----------
    url : str
        Endpoint returning JSON with "latitude" and "longitude".
    timeout : float
        Seconds before the HTTP call is abandoned.
    allowed : bool
        Stands in for the OS location permission.
    client : httpx.Client | None
        Inject a client (tests, shared connection pools).
    """

    ACCURACY_M = 5000.0

    def __init__(
        self,
        url: str = "https://ipapi.co/json/",
        timeout: float = DEFAULT_LOCATION_TIMEOUT,
        allowed: bool = True,
        client: httpx.Client | None = None,
    ):
        self._url = url
        self._allowed = allowed
        self._client = client or httpx.Client(timeout=timeout)

    def has_permission(self) -> bool:
        return self._allowed

    def last_known_location(self) -> Optional[Location]:
        response = self._client.get(self._url)
        response.raise_for_status()
        data = response.json()
        if data.get("latitude") is None or data.get("longitude") is None:
            return None
        return Location(float(data["latitude"]), float(data["longitude"]), self.ACCURACY_M)

    def close(self) -> None:
        self._client.close()


# Composers
class ConsoleComposer:
    """
    Prints the draft for a human to send. Nothing is transmitted.
    """

    def compose(self, draft: AlertDraft) -> None:
        print(
            f"\n"
            f"{'=' * 60}\n"
            f"EMERGENCY MESSAGE DRAFT\n"
            f"{'=' * 60}\n"
            f"  To       : {draft.recipient_string}\n"
            f"  Open     : {draft.sms_uri}\n"
            f"{'-' * 60}\n"
            f"{draft.body}\n"
            f"{'-' * 60}\n"
            f"  Status   : *** NOT SENT. Review and send it yourself. ***\n"
            f"{'=' * 60}\n"
        )
        logger.info("Alert draft presented | recipients=%d", len(draft.recipients))


class RecordingComposer:
    """Keeps drafts in memory."""

    def __init__(self):
        self.drafts: list[AlertDraft] = []

    def compose(self, draft: AlertDraft) -> None:
        self.drafts.append(draft)


# Message text
def format_alert_time(when: datetime) -> str:
    """12-hour clock without a leading zero, e.g. 9:05 PM."""
    return when.strftime("%I:%M %p").lstrip("0")


def build_alert_message(
    user_name: str,
    location_text: str,
    map_link: str | None = None,
    when: datetime | None = None,
) -> str:
    when = when or datetime.now()
    lines = [
        f"ALERT: Possible fall detected for {user_name} at {format_alert_time(when)}.",
        f"Location: {location_text}",
    ]
    if map_link:
        lines.append(f"Map: {map_link}")
    lines.append("If you reach them, reply OK.")
    return "\n".join(lines)


# Main class
class AlertComposer:
    """
    Builds the emergency message after a countdown runs out and hands it
    to a MessageComposer. It never sends anything itself.

    Usage
    -----
        composer = AlertComposer(ConsoleComposer(), StaticLocationProvider())
        draft = composer.compose_emergency_message(settings)

    Parameters
    ----------
    composer : MessageComposer
        Receives exactly one draft per alert, addressed to every contact.
    location_provider : LocationProvider | None
        None behaves like a provider without permission.
    location_timeout : float
        Upper bound on the single location lookup.
    clock : Callable[[], datetime]
        Timestamp source for the message.
    logger : logging.Logger | None
    """

    def __init__(
        self,
        composer: MessageComposer,
        location_provider: LocationProvider | None = None,
        location_timeout: float = DEFAULT_LOCATION_TIMEOUT,
        clock: Callable[[], datetime] = datetime.now,
        logger: logging.Logger | None = None,
    ):
        self._composer = composer
        self._provider = location_provider
        self._timeout = location_timeout
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

    # Public API
    def compose_emergency_message(
        self,
        settings: AlertSettings,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> AlertDraft | None:
        """
        Compose and hand off one alert draft.

        Returns
        -------
        AlertDraft | None
            None when alerting is switched off, there are no contacts, or
            the countdown was cancelled while the location was being looked
            up.
        """
        try:
            self._check_enabled(settings)
        except AlertSkipped as exc:
            self._log.info("Alert message skipped: %s", exc)
            return None

        location_text, map_link = self._resolve_location(settings)

        if is_cancelled():
            self._log.info("Countdown cancelled during location lookup; discarding alert")
            return None

        draft = AlertDraft(
            recipients=tuple(c.phone for c in settings.contacts),
            body=build_alert_message(settings.user_name, location_text, map_link, self._clock()),
        )

        self._log.warning(
            "ALERT COMPOSED | user=%s | recipients=%d | location=%s",
            settings.user_name,
            len(draft.recipients),
            location_text,
        )
        try:
            self._composer.compose(draft)
        except Exception as exc:
            self._log.error("Message composer failed: %s", exc, exc_info=True)
        return draft

    def close(self) -> None:
        """Close the location provider, if it holds resources."""
        close = getattr(self._provider, "close", None)
        if close is not None:
            close()

    # Internal helpers
    @staticmethod
    def _check_enabled(settings: AlertSettings) -> None:
        if not settings.sms_enabled:
            raise AlertsDisabled("SMS alerting is disabled")
        if not settings.contacts:
            raise NoRecipients("no emergency contacts configured")

    def _resolve_location(self, settings: AlertSettings) -> tuple[str, str | None]:
        try:
            location = self._fetch_location(settings)
        except LocationUnavailable as exc:
            self._log.warning("Location unavailable (%s); using placeholder", exc)
            return exc.placeholder, None
        return location.as_text(), location.map_link()

    def _fetch_location(self, settings: AlertSettings) -> Location:
        if not settings.gps_enabled:
            raise LocationUnavailable("GPS disabled in settings", PLACEHOLDER_DISABLED)

        try:
            permitted = self._provider is not None and self._provider.has_permission()
        except Exception as exc:
            raise LocationUnavailable(f"permission check failed: {exc}", PLACEHOLDER_PERMISSION) from exc
        if not permitted:
            raise LocationUnavailable("location permission missing", PLACEHOLDER_PERMISSION)

        # a lookup that outlives the timeout must not hold up the next one
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="location")
        future = executor.submit(self._provider.last_known_location)
        try:
            location = future.result(timeout=self._timeout)
        except FutureTimeout as exc:
            raise LocationUnavailable(f"lookup timed out after {self._timeout}s") from exc
        except Exception as exc:
            raise LocationUnavailable(f"lookup failed: {exc}") from exc
        finally:
            executor.shutdown(wait=False)

        if location is None:
            raise LocationUnavailable("provider returned no location")
        return location
