"""
Scheduling models: occurrences, busy intervals, decisions and agenda outputs.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, model_validator

from cadence.models.enums import (
    BusySource,
    DecisionOutcome,
    HealthStatus,
    PlanMode,
    ReconcileStatus,
    ScheduleType,
)
from cadence.utils.datetime_utils import local_instant


def occurrence_key(activity_id: UUID, occurrence_date: date) -> str:
    """Stable reconciliation key for one occurrence of an activity."""
    return f"{activity_id}:{occurrence_date.isoformat()}"


class PlanningWindow(BaseModel):
    """Inclusive range of local dates."""

    start: date
    end: date

    @model_validator(mode="after")
    def _check_range(self) -> "PlanningWindow":
        if self.end < self.start:
            raise ValueError("window end must not be before window start")
        return self

    def bounds(self, timezone: str) -> tuple[datetime, datetime]:
        """UTC instants ``[start 00:00, end + 1 day 00:00)`` in the given zone."""
        midnight = datetime.min.time()
        return (
            local_instant(self.start, midnight, timezone),
            local_instant(self.end + timedelta(days=1), midnight, timezone),
        )

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class Occurrence(BaseModel):
    """One concrete instance of an activity. Derived, never stored."""

    activity_id: UUID
    title: str
    schedule_type: ScheduleType
    occurrence_date: date
    start_at: datetime
    end_at: datetime
    # Date the reconciliation key is built from when it must not follow
    # occurrence_date (a deadline task moves as the deadline nears)
    key_date: Optional[date] = None

    @computed_field
    @property
    def key(self) -> str:
        return occurrence_key(self.activity_id, self.key_date or self.occurrence_date)


class BusyInterval(BaseModel):
    """Half-open ``[start_at, end_at)`` range during which the user is committed."""

    start_at: datetime
    end_at: datetime
    source: BusySource
    title: Optional[str] = None
    # Set when the interval was produced by this system for an occurrence
    key: Optional[str] = None

    @model_validator(mode="after")
    def _check_duration(self) -> "BusyInterval":
        if self.end_at < self.start_at:
            raise ValueError("busy interval must have non-negative duration")
        return self

    def overlaps(self, start_at: datetime, end_at: datetime) -> bool:
        """Strict overlap; touching endpoints do not overlap."""
        return self.start_at < end_at and start_at < self.end_at


class ExternalEvent(BaseModel):
    """Event as stored by the external calendar."""

    event_id: str
    key: Optional[str] = None
    title: Optional[str] = None
    start_at: datetime
    end_at: datetime


class SchedulingDecision(BaseModel):
    """Planning result for one candidate occurrence."""

    occurrence: Occurrence
    outcome: DecisionOutcome
    conflicting_interval: Optional[BusyInterval] = None
    verified: bool = True
    suggested_start_at: Optional[datetime] = None
    notes: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_conflict(self) -> "SchedulingDecision":
        has_interval = self.conflicting_interval is not None
        if has_interval != (self.outcome == DecisionOutcome.CONFLICT):
            raise ValueError("conflicting_interval is required for, and only for, conflicts")
        return self


class ReconciliationEntry(BaseModel):
    """Commit result for a single occurrence."""

    key: str
    activity_id: UUID
    status: ReconcileStatus
    external_event_id: Optional[str] = None
    error: Optional[str] = None


class ReconciliationReport(BaseModel):
    """Summary of a commit run against the external calendar."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    conflicted: int = 0
    failed: int = 0
    entries: list[ReconciliationEntry] = Field(default_factory=list)

    def add(self, entry: ReconciliationEntry) -> None:
        self.entries.append(entry)
        if entry.status == ReconcileStatus.CREATED:
            self.created += 1
        elif entry.status == ReconcileStatus.UPDATED:
            self.updated += 1
        elif entry.status == ReconcileStatus.SKIPPED:
            self.skipped += 1
        elif entry.status == ReconcileStatus.CONFLICTED:
            self.conflicted += 1
        else:
            self.failed += 1

    @property
    def complete(self) -> bool:
        return self.failed == 0


class AgendaSummary(BaseModel):
    """Counts for display next to the agenda."""

    total: int = 0
    by_outcome: dict[str, int] = Field(default_factory=dict)
    by_schedule_type: dict[str, int] = Field(default_factory=dict)
    conflicts: int = 0
    unverified: int = 0
    next_steps: list[str] = Field(default_factory=list)


class Agenda(BaseModel):
    """Finalized agenda for a planning run."""

    user_id: str
    window: PlanningWindow
    mode: PlanMode
    decisions: list[SchedulingDecision] = Field(default_factory=list)
    external_verified: bool = True
    summary: AgendaSummary = Field(default_factory=AgendaSummary)
    report: Optional[ReconciliationReport] = None

    def accepted(self) -> list[SchedulingDecision]:
        return [d for d in self.decisions if d.outcome == DecisionOutcome.ACCEPTED]


class CalendarHealth(BaseModel):
    """External calendar connectivity check result."""

    status: HealthStatus
    message: str
    response_time_ms: Optional[float] = None
    error: Optional[str] = None
