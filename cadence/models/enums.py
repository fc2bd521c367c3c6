"""
Enum definitions for the scheduling engine.

These enums are used across models and provide type-safe status values.
"""

from enum import Enum


class Frequency(str, Enum):
    """Recurrence frequency (RFC 5545 FREQ)."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class ScheduleType(str, Enum):
    """
    How an activity is placed on the calendar.

    STRICT = Fixed single start/end time
    FLEXIBLE = No time; placed by the planner, repeat limited by frequency cap
    DEADLINE = Must be done before a deadline
    RECURRING_STRICT = Fixed time of day following a recurrence rule
    """

    STRICT = "strict"
    FLEXIBLE = "flexible"
    DEADLINE = "deadline"
    RECURRING_STRICT = "recurring_strict"


class BusySource(str, Enum):
    """Where a busy interval came from."""

    OWN_ACTIVITY = "own_activity"
    EXTERNAL_CALENDAR = "external_calendar"


class DecisionOutcome(str, Enum):
    """Planning outcome for a single candidate occurrence."""

    ACCEPTED = "accepted"
    CONFLICT = "conflict"
    CAPPED = "capped"
    OUT_OF_WINDOW = "out_of_window"


class PlanMode(str, Enum):
    """Planning mode."""

    DRY_RUN = "dry_run"  # No external side effects
    COMMIT = "commit"  # Reconcile with the external calendar


class ReconcileStatus(str, Enum):
    """Per-occurrence result of commit-mode reconciliation."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    CONFLICTED = "conflicted"
    FAILED = "failed"


class HealthStatus(str, Enum):
    """External calendar health."""

    HEALTHY = "healthy"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"
