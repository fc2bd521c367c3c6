"""
In-memory calendar provider for local development and tests.

Supports failure injection so degraded and partial-failure paths can be
exercised without a network.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Optional

from cadence.core.exceptions import CalendarUnavailableError
from cadence.interfaces.calendar_provider import ICalendarProvider
from cadence.models.enums import BusySource
from cadence.models.schedule import BusyInterval, ExternalEvent
from cadence.models.user import CalendarAccount
from cadence.utils.datetime_utils import ensure_utc


class MemoryCalendarProvider(ICalendarProvider):
    """
    Calendar backed by a dict per account.

    Attributes:
        unavailable: When True, every call fails
        busy_failures: Number of upcoming list_busy_intervals calls to fail
        find_failures: Number of upcoming find_event_by_key calls to fail
        upsert_failures: Number of upcoming upsert_event calls to fail
        failing_keys: Keys whose upserts always fail
    """

    def __init__(self):
        self._events: dict[str, dict[str, ExternalEvent]] = defaultdict(dict)
        self._next_id = 1
        self.unavailable = False
        self.busy_failures = 0
        self.find_failures = 0
        self.upsert_failures = 0
        self.failing_keys: set[str] = set()
        self.create_calls = 0
        self.update_calls = 0

    def add_event(
        self,
        account: CalendarAccount,
        title: str,
        start_at: datetime,
        end_at: datetime,
        key: Optional[str] = None,
    ) -> ExternalEvent:
        """Seed an event, e.g. a meeting the user already has."""
        event = ExternalEvent(
            event_id=self._new_id(),
            key=key,
            title=title,
            start_at=ensure_utc(start_at),
            end_at=ensure_utc(end_at),
        )
        self._events[account.account_id][event.event_id] = event
        return event

    def events(self, account: CalendarAccount) -> list[ExternalEvent]:
        return sorted(self._events[account.account_id].values(), key=lambda e: e.start_at)

    async def list_busy_intervals(
        self, account: CalendarAccount, start_at: datetime, end_at: datetime
    ) -> list[BusyInterval]:
        if self.busy_failures > 0:
            self.busy_failures -= 1
            self._fail("list_busy_intervals")
        self._check_available("list_busy_intervals")
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        return [
            BusyInterval(
                start_at=event.start_at,
                end_at=event.end_at,
                source=BusySource.EXTERNAL_CALENDAR,
                title=event.title,
                key=event.key,
            )
            for event in self.events(account)
            if event.start_at < end_at and event.end_at > start_at
        ]

    async def find_event_by_key(
        self, account: CalendarAccount, key: str
    ) -> Optional[ExternalEvent]:
        if self.find_failures > 0:
            self.find_failures -= 1
            self._fail("find_event_by_key")
        self._check_available("find_event_by_key")
        for event in self._events[account.account_id].values():
            if event.key == key:
                return event
        return None

    async def upsert_event(
        self,
        account: CalendarAccount,
        key: str,
        start_at: datetime,
        end_at: datetime,
        title: str,
        event_id: Optional[str] = None,
    ) -> str:
        if self.upsert_failures > 0:
            self.upsert_failures -= 1
            self._fail("upsert_event")
        if key in self.failing_keys:
            self._fail("upsert_event")
        self._check_available("upsert_event")

        events = self._events[account.account_id]
        if event_id is None:
            existing = await self.find_event_by_key(account, key)
            event_id = existing.event_id if existing else None
        if event_id is None:
            event_id = self._new_id()
            self.create_calls += 1
        else:
            self.update_calls += 1
        events[event_id] = ExternalEvent(
            event_id=event_id,
            key=key,
            title=title,
            start_at=ensure_utc(start_at),
            end_at=ensure_utc(end_at),
        )
        return event_id

    def _new_id(self) -> str:
        event_id = f"evt-{self._next_id}"
        self._next_id += 1
        return event_id

    def _check_available(self, operation: str) -> None:
        if self.unavailable:
            self._fail(operation)

    @staticmethod
    def _fail(operation: str) -> None:
        raise CalendarUnavailableError(f"Calendar {operation} unavailable")
