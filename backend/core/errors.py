"""
Error taxonomy for the classification engine.

None of these are fatal to a scan: extraction errors degrade to partial
feature vectors, remote errors fall back to the local result and malformed
discovery events are dropped.
"""


class SlopShieldError(Exception):
    """Base class for all engine errors."""


class ExtractionUnavailable(SlopShieldError):
    """Features could not be computed (text too short, pixels unreadable)."""


class PixelAccessDenied(ExtractionUnavailable):
    """Pixel read was blocked by cross-origin policy or no pixel data exists."""


class RemoteScorerUnreachable(SlopShieldError):
    """Remote scorer timed out, failed to connect or returned a bad response."""

    def __init__(self, message, latency_ms=None):
        super().__init__(message)
        self.latency_ms = latency_ms


class MalformedInput(SlopShieldError):
    """A discovery event is missing its id, kind or payload."""


class InvalidTransition(SlopShieldError):
    """A classification unit was asked to make a move its state does not allow."""

    def __init__(self, unit_id, current, target):
        super().__init__(f"Unit {unit_id}: cannot move from {current} to {target}")
        self.unit_id = unit_id
        self.current = current
        self.target = target


class IrreversibleAnnotation(SlopShieldError):
    """Revert was requested for content that was removed from the page."""
