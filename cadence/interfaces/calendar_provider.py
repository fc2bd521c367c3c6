"""
External calendar provider interface.

Implementations: Google Calendar (REST), in-memory (local/test).
Every method raises CalendarUnavailableError on network or auth failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from cadence.models.schedule import BusyInterval, ExternalEvent
from cadence.models.user import CalendarAccount


class ICalendarProvider(ABC):
    """Abstract interface for an external calendar."""

    @abstractmethod
    async def list_busy_intervals(
        self, account: CalendarAccount, start_at: datetime, end_at: datetime
    ) -> list[BusyInterval]:
        """
        List busy intervals intersecting ``[start_at, end_at)``.

        Intervals for events created by this system carry their
        reconciliation key.
        """
        pass

    @abstractmethod
    async def find_event_by_key(
        self, account: CalendarAccount, key: str
    ) -> Optional[ExternalEvent]:
        """Find the event previously created for a reconciliation key."""
        pass

    @abstractmethod
    async def upsert_event(
        self,
        account: CalendarAccount,
        key: str,
        start_at: datetime,
        end_at: datetime,
        title: str,
        event_id: Optional[str] = None,
    ) -> str:
        """
        Create or update the event for a key and return its external id.

        Must be safe to call twice with the same key.
        """
        pass
