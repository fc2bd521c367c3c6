"""
Activity repository interface.

Read-only contract the scheduling engine needs from the activity store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from cadence.models.activity import Activity
from cadence.models.schedule import BusyInterval


class IActivityRepository(ABC):
    """Abstract interface for reading a user's activities."""

    @abstractmethod
    async def list_active(self, user_id: str) -> list[Activity]:
        """List the user's non-archived activities."""
        pass

    @abstractmethod
    async def list_committed_intervals(
        self, user_id: str, start_at: datetime, end_at: datetime
    ) -> list[BusyInterval]:
        """List already-committed own-activity intervals intersecting the range."""
        pass

    @abstractmethod
    async def list_occurrence_starts(
        self, user_id: str, activity_id: UUID, before: datetime
    ) -> list[datetime]:
        """List start instants of past occurrences of an activity, strictly before ``before``."""
        pass
