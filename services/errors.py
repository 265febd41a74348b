"""
Domain errors surfaced to the bot layer.
"""
from typing import Optional


class TomatoError(Exception):
    """Base class for all recoverable domain errors."""


class LocationUnavailable(TomatoError):
    """Device location could not be obtained."""

    DENIED = "denied"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"
    BUSY = "busy"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Location unavailable: {reason}")


class FetchFailed(TomatoError):
    """Restaurant, menu or order list could not be loaded."""


class ValidationError(TomatoError):
    """Checkout input is malformed (empty cart, missing price, amount mismatch)."""


class PaymentNotConfirmed(TomatoError):
    """Payment was declined or never confirmed."""


class PersistenceError(TomatoError):
    """The order store rejected or failed to save an order."""
