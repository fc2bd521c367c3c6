"""Abstract interfaces for infrastructure abstraction."""

from cadence.interfaces.activity_repository import IActivityRepository
from cadence.interfaces.calendar_provider import ICalendarProvider

__all__ = [
    "IActivityRepository",
    "ICalendarProvider",
]
