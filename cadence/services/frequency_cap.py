"""
Frequency cap enforcement.

An activity's ``max_frequency_days`` is the minimum gap between any two of
its occurrences, independent of any recurrence rule.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from cadence.models.activity import Activity
from cadence.utils.datetime_utils import ensure_utc


class FrequencyCapEnforcer:
    """Decides whether a new occurrence is allowed yet."""

    def allow(
        self,
        activity: Activity,
        candidate_start: datetime,
        prior_occurrence_starts: Iterable[datetime],
        timezone: Optional[str] = None,
    ) -> bool:
        """
        Check a candidate against the activity's occurrence log.

        A prior occurrence closer than ``max_frequency_days`` days (either
        direction) rejects the candidate; a gap of exactly the cap is allowed.
        Uncapped activities are always allowed.

        With ``timezone``, gaps are measured in the owner's wall-clock time,
        so a weekly 19:00 occurrence stays exactly 7 days apart across a
        DST change.
        """
        return (
            self.blocking_occurrence(activity, candidate_start, prior_occurrence_starts, timezone)
            is None
        )

    def blocking_occurrence(
        self,
        activity: Activity,
        candidate_start: datetime,
        prior_occurrence_starts: Iterable[datetime],
        timezone: Optional[str] = None,
    ) -> Optional[datetime]:
        """Closest prior start that violates the cap, or None."""
        if activity.max_frequency_days is None:
            return None
        cap = timedelta(days=activity.max_frequency_days)
        candidate = _comparable(candidate_start, timezone)
        closest: Optional[datetime] = None
        closest_gap: Optional[timedelta] = None
        for prior in prior_occurrence_starts:
            gap = abs(candidate - _comparable(prior, timezone))
            if gap < cap and (closest_gap is None or gap < closest_gap):
                closest, closest_gap = prior, gap
        return closest


def _comparable(value: datetime, timezone: Optional[str]) -> datetime:
    utc_value = ensure_utc(value)
    if timezone is None:
        return utc_value
    return utc_value.astimezone(ZoneInfo(timezone)).replace(tzinfo=None)
