"""
Activity models.

An activity's schedule is a tagged union: exactly one of Strict, Flexible,
Deadline or RecurringStrict is active, selected by ``kind``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Annotated, Any, Literal, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from cadence.core.exceptions import ValidationError
from cadence.models.enums import ScheduleType
from cadence.models.recurrence import RecurrenceRule

MAX_STRICT_DURATION = timedelta(hours=12)


class StrictSchedule(BaseModel):
    """Single fixed start/end."""

    kind: Literal["strict"] = "strict"
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def _check_times(self) -> "StrictSchedule":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.end_time - self.start_time > MAX_STRICT_DURATION:
            raise ValueError("activity duration cannot exceed 12 hours")
        return self


class FlexibleSchedule(BaseModel):
    """No fixed time; placed by the planner and limited by max_frequency_days."""

    kind: Literal["flexible"] = "flexible"


class DeadlineSchedule(BaseModel):
    """Must be done before the deadline."""

    kind: Literal["deadline"] = "deadline"
    deadline: datetime


class RecurringStrictSchedule(BaseModel):
    """Fixed time of day on every date produced by the rule."""

    kind: Literal["recurring_strict"] = "recurring_strict"
    rule: RecurrenceRule
    occurrence_time_start: time
    # Falls back to the activity's duration when absent
    occurrence_time_end: Optional[time] = None


Schedule = Annotated[
    Union[StrictSchedule, FlexibleSchedule, DeadlineSchedule, RecurringStrictSchedule],
    Field(discriminator="kind"),
]


class Activity(BaseModel):
    """Activity with its schedule variant."""

    id: UUID
    user_id: str
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    schedule: Schedule
    duration_minutes: Optional[int] = Field(None, ge=1)
    max_frequency_days: Optional[int] = Field(
        None, ge=1, description="Minimum gap in days between two occurrences; None = uncapped"
    )
    archived_at: Optional[datetime] = None

    @property
    def schedule_type(self) -> ScheduleType:
        return ScheduleType(self.schedule.kind)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Activity":
        """
        Build an Activity from the flat, nullable column layout.

        The stored row keeps every schedule field side by side; only the group
        selected by ``schedule_type`` is read.

        Raises:
            ValidationError: If the active field group is incomplete
            InvalidRuleError: If the stored recurrence rule is malformed
        """
        schedule_type = record.get("schedule_type")
        try:
            kind = ScheduleType(schedule_type)
        except ValueError as e:
            raise ValidationError(f"Unknown schedule_type: {schedule_type!r}") from e

        schedule: Union[StrictSchedule, FlexibleSchedule, DeadlineSchedule, RecurringStrictSchedule]
        if kind == ScheduleType.STRICT:
            if not record.get("start_time") or not record.get("end_time"):
                raise ValidationError(
                    "Strict schedule activities must have both start and end times"
                )
            schedule = StrictSchedule(
                start_time=record["start_time"], end_time=record["end_time"]
            )
        elif kind == ScheduleType.FLEXIBLE:
            schedule = FlexibleSchedule()
        elif kind == ScheduleType.DEADLINE:
            if not record.get("deadline"):
                raise ValidationError("deadline is required for deadline-based activities")
            schedule = DeadlineSchedule(deadline=record["deadline"])
        else:
            rule_data = record.get("recurrence_rule")
            start_date = record.get("recurrence_start_date")
            if not rule_data or not start_date or not record.get("occurrence_time_start"):
                raise ValidationError(
                    "Recurring activities need recurrence_rule, recurrence_start_date "
                    "and occurrence_time_start"
                )
            start_date = _as_date(start_date)
            end_date = _as_date(record["recurrence_end_date"]) if record.get("recurrence_end_date") else None
            if isinstance(rule_data, str):
                rule = RecurrenceRule.from_rrule(rule_data, start_date, end_date)
            else:
                rule = RecurrenceRule.from_mapping(rule_data, start_date, end_date)
            schedule = RecurringStrictSchedule(
                rule=rule,
                occurrence_time_start=record["occurrence_time_start"],
                occurrence_time_end=record.get("occurrence_time_end"),
            )

        return cls(
            id=record["id"],
            user_id=str(record["user_id"]),
            name=record["name"],
            description=record.get("description"),
            schedule=schedule,
            duration_minutes=record.get("duration_minutes"),
            max_frequency_days=record.get("max_frequency_days"),
            archived_at=record.get("archived_at"),
        )


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
