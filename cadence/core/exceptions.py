"""
Custom exceptions for the scheduling engine.
"""

from typing import Any, Optional


class CadenceError(Exception):
    """Base exception for cadence."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(CadenceError):
    """Resource not found."""

    pass


class ValidationError(CadenceError):
    """Validation error."""

    pass


class InvalidRuleError(CadenceError):
    """Malformed recurrence rule. Never retried."""

    pass


class InfrastructureError(CadenceError):
    """Infrastructure-related error (storage, external services, etc.)."""

    pass


class CalendarUnavailableError(InfrastructureError):
    """External calendar could not be reached (network, auth, timeout)."""

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        attempts: int = 1,
    ):
        super().__init__(message, details=details)
        self.attempts = attempts
