"""
In-memory activity repository for local development and tests.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from cadence.interfaces.activity_repository import IActivityRepository
from cadence.models.activity import Activity
from cadence.models.schedule import BusyInterval
from cadence.utils.datetime_utils import ensure_utc


class MemoryActivityRepository(IActivityRepository):
    """Keeps activities, committed intervals and occurrence history in dicts."""

    def __init__(self, activities: Optional[Iterable[Activity]] = None):
        self._activities: dict[UUID, Activity] = {}
        self._intervals: dict[str, list[BusyInterval]] = defaultdict(list)
        self._occurrences: dict[tuple[str, UUID], list[datetime]] = defaultdict(list)
        for activity in activities or ():
            self.add(activity)

    def add(self, activity: Activity) -> Activity:
        self._activities[activity.id] = activity
        return activity

    def add_committed_interval(self, user_id: str, interval: BusyInterval) -> None:
        self._intervals[user_id].append(interval)

    def record_occurrence(self, user_id: str, activity_id: UUID, start_at: datetime) -> None:
        """Append a past occurrence to an activity's history."""
        self._occurrences[(user_id, activity_id)].append(ensure_utc(start_at))

    async def list_active(self, user_id: str) -> list[Activity]:
        return [
            activity
            for activity in self._activities.values()
            if activity.user_id == user_id and not activity.is_archived
        ]

    async def list_committed_intervals(
        self, user_id: str, start_at: datetime, end_at: datetime
    ) -> list[BusyInterval]:
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        return [
            interval
            for interval in self._intervals.get(user_id, [])
            if ensure_utc(interval.start_at) < end_at and ensure_utc(interval.end_at) > start_at
        ]

    async def list_occurrence_starts(
        self, user_id: str, activity_id: UUID, before: datetime
    ) -> list[datetime]:
        before = ensure_utc(before)
        return sorted(
            start for start in self._occurrences.get((user_id, activity_id), []) if start < before
        )
