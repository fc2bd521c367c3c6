"""Pydantic models (schemas) for the scheduling engine."""

from cadence.models.enums import (
    BusySource,
    DecisionOutcome,
    Frequency,
    HealthStatus,
    PlanMode,
    ReconcileStatus,
    ScheduleType,
)
from cadence.models.recurrence import RecurrenceRule
from cadence.models.activity import (
    Activity,
    DeadlineSchedule,
    FlexibleSchedule,
    RecurringStrictSchedule,
    StrictSchedule,
)
from cadence.models.schedule import (
    Agenda,
    AgendaSummary,
    BusyInterval,
    CalendarHealth,
    ExternalEvent,
    Occurrence,
    PlanningWindow,
    ReconciliationEntry,
    ReconciliationReport,
    SchedulingDecision,
)
from cadence.models.user import CalendarAccount, UserContext

__all__ = [
    # Enums
    "BusySource",
    "DecisionOutcome",
    "Frequency",
    "HealthStatus",
    "PlanMode",
    "ReconcileStatus",
    "ScheduleType",
    # Rules and activities
    "RecurrenceRule",
    "Activity",
    "StrictSchedule",
    "FlexibleSchedule",
    "DeadlineSchedule",
    "RecurringStrictSchedule",
    # Scheduling
    "Agenda",
    "AgendaSummary",
    "BusyInterval",
    "CalendarHealth",
    "ExternalEvent",
    "Occurrence",
    "PlanningWindow",
    "ReconciliationEntry",
    "ReconciliationReport",
    "SchedulingDecision",
    # Users
    "CalendarAccount",
    "UserContext",
]
