"""
Availability index.

Merges a user's own committed intervals with the external calendar's busy
intervals into one sorted, coalesced set, and answers overlap queries in
O(log n).
"""

from __future__ import annotations

from bisect import bisect_right
from datetime import datetime
from typing import Iterable, Optional

from cadence.core.exceptions import CalendarUnavailableError
from cadence.core.logger import setup_logger
from cadence.interfaces.activity_repository import IActivityRepository
from cadence.models.schedule import BusyInterval
from cadence.models.user import UserContext
from cadence.services.calendar_gateway import CalendarGateway
from cadence.utils.datetime_utils import ensure_utc

logger = setup_logger(__name__)


class AvailabilityIndex:
    """Sorted, coalesced busy intervals for one planning run."""

    def __init__(
        self,
        intervals: list[BusyInterval],
        external_verified: bool = True,
        members: Optional[list[list[BusyInterval]]] = None,
    ):
        self._intervals = intervals
        self._ends = [interval.end_at for interval in intervals]
        # Source intervals behind each merged interval, sorted by start
        self._members = members if members is not None else [[interval] for interval in intervals]
        self.external_verified = external_verified

    @classmethod
    def build(
        cls,
        own_intervals: Iterable[BusyInterval],
        external_intervals: Iterable[BusyInterval],
        *,
        external_verified: bool = True,
    ) -> "AvailabilityIndex":
        """
        Merge both sources.

        Empty intervals are dropped. Overlapping or touching intervals are
        merged; the merged interval keeps the source and title of its earliest
        member. Keyed members are remembered so a lookup can ignore the
        occurrence's own event without ignoring anything merged with it.
        """
        pending = [
            interval.model_copy(
                update={
                    "start_at": ensure_utc(interval.start_at),
                    "end_at": ensure_utc(interval.end_at),
                }
            )
            for interval in [*own_intervals, *external_intervals]
        ]
        pending = [interval for interval in pending if interval.end_at > interval.start_at]
        pending.sort(key=lambda entry: (entry.start_at, entry.end_at))

        merged: list[BusyInterval] = []
        members: list[list[BusyInterval]] = []
        for interval in pending:
            if merged and interval.start_at <= merged[-1].end_at:
                members[-1].append(interval)
                if interval.end_at > merged[-1].end_at:
                    merged[-1] = merged[-1].model_copy(
                        update={"end_at": interval.end_at, "key": None}
                    )
                elif merged[-1].key is not None:
                    merged[-1] = merged[-1].model_copy(update={"key": None})
            else:
                merged.append(interval)
                members.append([interval])
        return cls(merged, external_verified=external_verified, members=members)

    @property
    def intervals(self) -> list[BusyInterval]:
        return list(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def overlaps(
        self, start_at: datetime, end_at: datetime, ignore_key: Optional[str] = None
    ) -> Optional[BusyInterval]:
        """
        First busy interval strictly overlapping ``[start_at, end_at)``.

        Intervals are disjoint and sorted, so the first interval ending after
        ``start_at`` is the one with the lowest start. With ``ignore_key``,
        the event written for that occurrence does not count; the other
        members of its merged interval still do.
        """
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        if end_at <= start_at:
            return None
        index = bisect_right(self._ends, start_at)
        while index < len(self._intervals) and self._intervals[index].start_at < end_at:
            group = self._members[index]
            if ignore_key is None or all(member.key != ignore_key for member in group):
                return self._intervals[index]
            for member in group:
                if member.key != ignore_key and member.overlaps(start_at, end_at):
                    return member
            index += 1
        return None

    def free_between(
        self, start_at: datetime, end_at: datetime, ignore_key: Optional[str] = None
    ) -> bool:
        return self.overlaps(start_at, end_at, ignore_key=ignore_key) is None


async def load_availability(
    activity_repo: IActivityRepository,
    gateway: Optional[CalendarGateway],
    user: UserContext,
    start_at: datetime,
    end_at: datetime,
) -> AvailabilityIndex:
    """
    Build the index for a user and range.

    When the external calendar cannot be read (after the gateway's retries),
    the index is built from own intervals only and marked unverified instead
    of failing: availability must not block purely internal scheduling.
    """
    own = await activity_repo.list_committed_intervals(user.user_id, start_at, end_at)

    external: list[BusyInterval] = []
    verified = True
    if gateway is not None and user.calendar_account is not None:
        try:
            external = await gateway.list_busy_intervals(user.calendar_account, start_at, end_at)
        except CalendarUnavailableError as e:
            verified = False
            logger.warning(
                f"External calendar unavailable for user {user.user_id}, "
                f"planning against own intervals only: {e}"
            )
    elif user.calendar_account is not None:
        verified = False

    return AvailabilityIndex.build(own, external, external_verified=verified)
