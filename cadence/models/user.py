"""
User context models.

Only what the planner needs from a user: the id, the IANA timezone and the
external calendar account, if one is connected.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from cadence.utils.datetime_utils import is_valid_timezone


class CalendarAccount(BaseModel):
    """Connected external calendar account."""

    account_id: str
    # Calendar that planned events are written to
    calendar_id: str = "primary"
    # Further calendars whose events count as busy time
    busy_calendar_ids: list[str] = Field(default_factory=list)
    # Also read every calendar on the account's calendar list
    read_all_calendars: bool = False
    # Token refresh is handled by the caller
    access_token: Optional[str] = Field(None, repr=False)

    @property
    def busy_calendars(self) -> list[str]:
        """Calendars to read busy time from, write calendar first, without duplicates."""
        return list(dict.fromkeys([self.calendar_id, *self.busy_calendar_ids]))


class UserContext(BaseModel):
    """User whose activities are being planned."""

    user_id: str
    timezone: str = "America/Los_Angeles"
    calendar_account: Optional[CalendarAccount] = None

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            raise ValueError(f"Invalid timezone: {value}")
        return value
