"""
Conflict resolver.

Classifies a candidate occurrence against the availability index. It never
moves an occurrence; an alternative slot can be proposed separately.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Optional

from cadence.models.enums import DecisionOutcome
from cadence.models.schedule import Occurrence, SchedulingDecision
from cadence.services.availability_index import AvailabilityIndex
from cadence.utils.datetime_utils import local_instant, to_local_date

# Morning 07:00-10:30, afternoon 13:00-16:30, evening 18:00-20:30
SLOT_HOURS = (7, 8, 9, 10, 13, 14, 15, 16, 18, 19, 20)
SLOT_MINUTES = (0, 30)


def candidate_slot_times() -> list[time]:
    """Half-hour slot starts tried when proposing an alternative."""
    return [time(hour, minute) for hour in SLOT_HOURS for minute in SLOT_MINUTES]


class ConflictResolver:
    """Classifies occurrences as accepted or conflicting."""

    def resolve(
        self,
        occurrence: Occurrence,
        index: AvailabilityIndex,
        *,
        verified: bool = True,
    ) -> SchedulingDecision:
        """
        Accept the occurrence, or report the earliest busy interval it overlaps.

        Touching endpoints are not a conflict (half-open intervals). The event
        already written for this occurrence never conflicts with it.
        """
        conflict = index.overlaps(
            occurrence.start_at, occurrence.end_at, ignore_key=occurrence.key
        )
        notes: list[str] = []
        if not verified:
            notes.append("Unverified against external calendar")
        if conflict is None:
            return SchedulingDecision(
                occurrence=occurrence,
                outcome=DecisionOutcome.ACCEPTED,
                verified=verified,
                notes=notes,
            )
        notes.insert(0, f"Conflicts with {conflict.title or 'busy time'} ({conflict.source.value})")
        return SchedulingDecision(
            occurrence=occurrence,
            outcome=DecisionOutcome.CONFLICT,
            conflicting_interval=conflict,
            verified=verified,
            notes=notes,
        )

    def suggest_alternative(
        self, occurrence: Occurrence, index: AvailabilityIndex, timezone: str
    ) -> Optional[datetime]:
        """
        First free slot on the occurrence's local day with the same duration.

        Returns None when every slot is taken.
        """
        duration: timedelta = occurrence.end_at - occurrence.start_at
        local_day = to_local_date(occurrence.start_at, timezone)
        for slot in candidate_slot_times():
            slot_start = local_instant(local_day, slot, timezone)
            if slot_start == occurrence.start_at:
                continue
            if index.free_between(
                slot_start, slot_start + duration, ignore_key=occurrence.key
            ):
                return slot_start
        return None
