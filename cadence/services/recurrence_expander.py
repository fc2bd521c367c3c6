"""
Recurrence expander.

Expands a RecurrenceRule into the concrete dates it produces within a
window, and pairs those dates with an activity's time of day to build
UTC occurrences. Pure: no I/O, no state.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator

from cadence.models.activity import Activity, RecurringStrictSchedule
from cadence.models.enums import Frequency
from cadence.models.recurrence import RecurrenceRule
from cadence.models.schedule import Occurrence
from cadence.utils.datetime_utils import local_instant, sunday_weekday


class RecurrenceExpander:
    """Expands recurrence rules into dates and occurrences."""

    def __init__(self, default_duration_minutes: int = 60):
        self.default_duration_minutes = default_duration_minutes

    def expand(
        self, rule: RecurrenceRule, window_start: date, window_end: date
    ) -> list[date]:
        """
        Dates produced by the rule within ``[window_start, window_end]``.

        Returned in strictly increasing order without duplicates. Each call
        recomputes from scratch, so the result can be requested again for
        another window at any time.
        """
        return list(self.iter_dates(rule, window_start, window_end))

    def iter_dates(
        self, rule: RecurrenceRule, window_start: date, window_end: date
    ) -> Iterator[date]:
        """Lazily yield the dates of ``expand``."""
        lower = max(rule.start_date, window_start)
        upper = window_end if rule.end_date is None else min(rule.end_date, window_end)
        if upper < lower:
            return

        index = self._first_period_index(rule, lower)
        while True:
            period_start = self._period_start(rule, index)
            if period_start > upper:
                return
            for day in self._select_positions(rule, self._period_candidates(rule, period_start)):
                if day < lower:
                    continue
                if day > upper:
                    return
                yield day
            index += 1

    def build_occurrences(
        self, activity: Activity, dates: list[date], timezone: str
    ) -> list[Occurrence]:
        """
        Pair each date with the activity's time of day.

        Local times are resolved in the owner's timezone and stored as UTC.
        An end time earlier than (or equal to) the start time ends on the
        following day.
        """
        schedule = activity.schedule
        if not isinstance(schedule, RecurringStrictSchedule):
            raise TypeError(f"Activity {activity.id} has no recurrence rule")

        occurrences: list[Occurrence] = []
        for day in dates:
            start_at = local_instant(day, schedule.occurrence_time_start, timezone)
            if schedule.occurrence_time_end is not None:
                end_day = day
                if schedule.occurrence_time_end <= schedule.occurrence_time_start:
                    end_day = day + timedelta(days=1)
                end_at = local_instant(end_day, schedule.occurrence_time_end, timezone)
            else:
                minutes = activity.duration_minutes or self.default_duration_minutes
                end_at = start_at + timedelta(minutes=minutes)
            occurrences.append(
                Occurrence(
                    activity_id=activity.id,
                    title=activity.name,
                    schedule_type=activity.schedule_type,
                    occurrence_date=day,
                    start_at=start_at,
                    end_at=end_at,
                )
            )
        return occurrences

    def occurrences_between(
        self, activity: Activity, window_start: date, window_end: date, timezone: str
    ) -> list[Occurrence]:
        """Expand and build in one step."""
        schedule = activity.schedule
        if not isinstance(schedule, RecurringStrictSchedule):
            raise TypeError(f"Activity {activity.id} has no recurrence rule")
        dates = self.expand(schedule.rule, window_start, window_end)
        return self.build_occurrences(activity, dates, timezone)

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    @staticmethod
    def _first_period_index(rule: RecurrenceRule, lower: date) -> int:
        """Index of the period containing ``lower`` (``lower >= start_date``)."""
        start = rule.start_date
        freq = rule.frequency
        if freq == Frequency.DAILY:
            return (lower - start).days // rule.interval
        if freq == Frequency.WEEKLY:
            return (lower - start).days // 7 // rule.interval
        if freq == Frequency.MONTHLY:
            months = (lower.year - start.year) * 12 + (lower.month - start.month)
            return months // rule.interval
        return (lower.year - start.year) // rule.interval

    @staticmethod
    def _period_start(rule: RecurrenceRule, index: int) -> date:
        start = rule.start_date
        freq = rule.frequency
        if freq == Frequency.DAILY:
            return start + timedelta(days=index * rule.interval)
        if freq == Frequency.WEEKLY:
            return start + timedelta(weeks=index * rule.interval)
        if freq == Frequency.MONTHLY:
            month_index = start.year * 12 + (start.month - 1) + index * rule.interval
            return date(month_index // 12, month_index % 12 + 1, 1)
        return date(start.year + index * rule.interval, 1, 1)

    def _period_candidates(self, rule: RecurrenceRule, period_start: date) -> list[date]:
        """All dates of one period that pass the BY* filters, ascending."""
        freq = rule.frequency

        if freq == Frequency.DAILY:
            day = period_start
            if rule.by_month and day.month not in rule.by_month:
                return []
            if rule.by_month_day and day.day not in _resolve_month_days(
                rule.by_month_day, day.year, day.month
            ):
                return []
            if rule.by_day and sunday_weekday(day) not in rule.by_day:
                return []
            return [day]

        if freq == Frequency.WEEKLY:
            weekdays = rule.by_day or {sunday_weekday(rule.start_date)}
            days = [period_start + timedelta(days=offset) for offset in range(7)]
            return [
                day
                for day in days
                if sunday_weekday(day) in weekdays
                and (not rule.by_month or day.month in rule.by_month)
            ]

        if freq == Frequency.MONTHLY:
            if rule.by_month and period_start.month not in rule.by_month:
                return []
            return self._month_candidates(rule, period_start.year, period_start.month)

        # YEARLY
        if rule.by_month:
            months = sorted(rule.by_month)
        elif rule.by_day or rule.by_month_day:
            months = list(range(1, 13))
        else:
            months = [rule.start_date.month]
        candidates: list[date] = []
        for month in months:
            candidates.extend(self._month_candidates(rule, period_start.year, month))
        return candidates

    @staticmethod
    def _month_candidates(rule: RecurrenceRule, year: int, month: int) -> list[date]:
        """Candidate days inside one month for MONTHLY/YEARLY rules."""
        last_day = calendar.monthrange(year, month)[1]
        if rule.by_month_day:
            days = _resolve_month_days(rule.by_month_day, year, month)
            if rule.by_day:
                days = {d for d in days if sunday_weekday(date(year, month, d)) in rule.by_day}
        elif rule.by_day:
            days = {
                d
                for d in range(1, last_day + 1)
                if sunday_weekday(date(year, month, d)) in rule.by_day
            }
        else:
            # Skip months without the start day (e.g. the 31st), never clamp
            default_day = rule.start_date.day
            days = {default_day} if default_day <= last_day else set()
        return [date(year, month, d) for d in sorted(days)]

    @staticmethod
    def _select_positions(rule: RecurrenceRule, candidates: list[date]) -> list[date]:
        """Apply BYSETPOS to one period's candidates."""
        if not rule.by_set_pos:
            return candidates
        count = len(candidates)
        picked: set[date] = set()
        for pos in rule.by_set_pos:
            index = pos - 1 if pos > 0 else count + pos
            if 0 <= index < count:
                picked.add(candidates[index])
        return sorted(picked)


def _resolve_month_days(month_days: frozenset[int], year: int, month: int) -> set[int]:
    """Turn signed month days into actual days; days the month lacks are dropped."""
    last_day = calendar.monthrange(year, month)[1]
    resolved: set[int] = set()
    for value in month_days:
        day = value if value > 0 else last_day + value + 1
        if 1 <= day <= last_day:
            resolved.add(day)
    return resolved
