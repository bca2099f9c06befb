# fall_detection/errors.py
"""
Error types shared by the detection and response packages.

Only ShapeMismatch, WindowNotReady and InvalidConfiguration ever reach a
caller. The rest are raised internally and recovered at the component that
owns the failing capability.
"""


class ShapeMismatch(ValueError):
    """A keypoint frame or window has the wrong length/shape."""


class WindowNotReady(RuntimeError):
    """A strict read was attempted before the window was full."""


class InvalidConfiguration(ValueError):
    """A component was constructed with inconsistent parameters."""


class InferenceFailure(RuntimeError):
    """The sequence classifier engine raised or returned garbage."""


class LocationUnavailable(RuntimeError):
    """
    No usable location: permission missing, provider returned nothing,
    or the lookup failed / timed out.

    placeholder is the text that goes into the alert message instead.
    """

    def __init__(self, message: str, placeholder: str = "unknown"):
        super().__init__(message)
        self.placeholder = placeholder


class AlertSkipped(Exception):
    """Base for intentional configuration that skips the alert message."""


class AlertsDisabled(AlertSkipped):
    """SMS alerting is switched off in settings."""


class NoRecipients(AlertSkipped):
    """No emergency contacts are configured."""
