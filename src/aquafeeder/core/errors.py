"""Exceptions raised by Aquafeeder operations."""

from __future__ import annotations


class AquafeederError(Exception):
    """Base class for Aquafeeder errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AquafeederError):
    """Raised when telemetry fields or a schedule time are malformed."""


class DuplicateEntryError(AquafeederError):
    """Raised when a schedule time is already registered."""


class NotFoundError(AquafeederError):
    """Raised when a schedule time to delete does not exist."""


class NotificationDispatchError(AquafeederError):
    """Raised when an outbound notification could not be delivered."""


class PersistenceError(AquafeederError):
    """Raised when a sample could not be stored."""
