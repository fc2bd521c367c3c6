"""
Candidate generation.

Turns each schedule variant into candidate occurrences for a planning
window. Recurring activities go through the RecurrenceExpander; strict,
flexible and deadline activities are placed with fixed heuristics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Optional

from cadence.core.config import Settings, get_settings
from cadence.models.activity import (
    Activity,
    DeadlineSchedule,
    FlexibleSchedule,
    RecurringStrictSchedule,
    StrictSchedule,
)
from cadence.models.schedule import Occurrence, PlanningWindow
from cadence.services.recurrence_expander import RecurrenceExpander
from cadence.utils.datetime_utils import ensure_utc, local_instant, to_local_date

DEFAULT_FLEXIBLE_GAP_DAYS = 7
STAGGER_STEP_MINUTES = 30
STAGGER_CYCLE_MINUTES = 120

WORK_KEYWORDS = ("work", "meeting")
ACTIVE_KEYWORDS = ("walk", "exercise")
DEADLINE_WORK_KEYWORDS = ("work", "project")

ACTIVE_HOUR = 7
EVENING_HOUR = 19
DEADLINE_DEFAULT_HOUR = 14


@dataclass
class CandidateSet:
    """Candidates for one activity."""

    occurrences: list[Occurrence] = field(default_factory=list)
    # Single-instance activities whose only occurrence falls outside the window
    out_of_window: list[Occurrence] = field(default_factory=list)


class CandidateGenerator:
    """Produces candidate occurrences per schedule variant."""

    def __init__(
        self,
        expander: Optional[RecurrenceExpander] = None,
        work_hours_start: int = 9,
        default_duration_minutes: int = 60,
        exclude_weekends: bool = False,
    ):
        self.expander = expander or RecurrenceExpander(default_duration_minutes)
        self.work_hours_start = work_hours_start
        self.default_duration_minutes = default_duration_minutes
        self.exclude_weekends = exclude_weekends

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CandidateGenerator":
        settings = settings or get_settings()
        return cls(
            expander=RecurrenceExpander(settings.DEFAULT_DURATION_MINUTES),
            work_hours_start=settings.WORK_HOURS_START,
            default_duration_minutes=settings.DEFAULT_DURATION_MINUTES,
            exclude_weekends=settings.EXCLUDE_WEEKENDS,
        )

    def generate(
        self,
        activity: Activity,
        window: PlanningWindow,
        timezone: str,
        now: datetime,
        stagger_slot: int = 0,
    ) -> CandidateSet:
        """
        Candidates for one activity.

        Args:
            activity: Activity to place
            window: Local date window
            timezone: Owner's IANA timezone
            now: Reference instant for deadline urgency
            stagger_slot: Position among flexible activities in this run,
                used to offset their start times from each other
        """
        schedule = activity.schedule
        if isinstance(schedule, RecurringStrictSchedule):
            return CandidateSet(
                occurrences=self.expander.occurrences_between(
                    activity, window.start, window.end, timezone
                )
            )
        if isinstance(schedule, StrictSchedule):
            return self._strict(activity, schedule, window, timezone)
        if isinstance(schedule, FlexibleSchedule):
            return self._flexible(activity, window, timezone, stagger_slot)
        if isinstance(schedule, DeadlineSchedule):
            return self._deadline(activity, schedule, window, timezone, now)
        raise TypeError(f"Unsupported schedule kind: {schedule!r}")

    def _strict(
        self,
        activity: Activity,
        schedule: StrictSchedule,
        window: PlanningWindow,
        timezone: str,
    ) -> CandidateSet:
        start_at = ensure_utc(schedule.start_time)
        end_at = ensure_utc(schedule.end_time)
        occurrence = Occurrence(
            activity_id=activity.id,
            title=activity.name,
            schedule_type=activity.schedule_type,
            occurrence_date=to_local_date(start_at, timezone),
            start_at=start_at,
            end_at=end_at,
        )
        window_start, window_end = window.bounds(timezone)
        if start_at < window_end and end_at > window_start:
            return CandidateSet(occurrences=[occurrence])
        return CandidateSet(out_of_window=[occurrence])

    def _flexible(
        self,
        activity: Activity,
        window: PlanningWindow,
        timezone: str,
        stagger_slot: int,
    ) -> CandidateSet:
        gap_days = activity.max_frequency_days or DEFAULT_FLEXIBLE_GAP_DAYS
        duration = timedelta(minutes=activity.duration_minutes or self.default_duration_minutes)
        offset = timedelta(
            minutes=(stagger_slot * STAGGER_STEP_MINUTES) % STAGGER_CYCLE_MINUTES
        )
        start_of_day = time(self.preferred_hour(activity.name))

        occurrences: list[Occurrence] = []
        current = window.start
        while current <= window.end:
            if self.exclude_weekends and current.weekday() >= 5:
                current += timedelta(days=1)
                continue
            start_at = local_instant(current, start_of_day, timezone) + offset
            occurrences.append(
                Occurrence(
                    activity_id=activity.id,
                    title=activity.name,
                    schedule_type=activity.schedule_type,
                    occurrence_date=current,
                    start_at=start_at,
                    end_at=start_at + duration,
                )
            )
            current += timedelta(days=gap_days)
        return CandidateSet(occurrences=occurrences)

    def _deadline(
        self,
        activity: Activity,
        schedule: DeadlineSchedule,
        window: PlanningWindow,
        timezone: str,
        now: datetime,
    ) -> CandidateSet:
        deadline = ensure_utc(schedule.deadline)
        deadline_day = to_local_date(deadline, timezone)
        scheduled_day = deadline_day - timedelta(days=self.days_before_deadline(deadline, now))

        name = activity.name.lower()
        hour = (
            self.work_hours_start
            if any(word in name for word in DEADLINE_WORK_KEYWORDS)
            else DEADLINE_DEFAULT_HOUR
        )
        start_at = local_instant(scheduled_day, time(hour), timezone)
        duration = timedelta(minutes=activity.duration_minutes or self.default_duration_minutes)
        occurrence = Occurrence(
            activity_id=activity.id,
            title=f"Complete: {activity.name}",
            schedule_type=activity.schedule_type,
            occurrence_date=scheduled_day,
            start_at=start_at,
            end_at=start_at + duration,
            key_date=deadline_day,
        )
        if window.contains(deadline_day) and window.contains(scheduled_day):
            return CandidateSet(occurrences=[occurrence])
        return CandidateSet(out_of_window=[occurrence])

    def preferred_hour(self, name: str) -> int:
        """Local start hour for a flexible activity, chosen by its name."""
        lowered = name.lower()
        if any(word in lowered for word in WORK_KEYWORDS):
            return self.work_hours_start
        if any(word in lowered for word in ACTIVE_KEYWORDS):
            return ACTIVE_HOUR
        return EVENING_HOUR

    @staticmethod
    def days_before_deadline(deadline: datetime, now: datetime) -> int:
        """
        Lead time before a deadline.

        Within 2 days: same day. Within a week: 1 day before. Otherwise 3.
        """
        remaining = ensure_utc(deadline) - ensure_utc(now)
        if remaining <= timedelta(days=2):
            return 0
        if remaining <= timedelta(weeks=1):
            return 1
        return 3
