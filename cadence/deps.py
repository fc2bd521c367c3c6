"""
Dependency wiring.

Provides cached factories that return the correct infrastructure
implementations based on environment configuration.
"""

from functools import lru_cache
from typing import Optional

from cadence.core.config import get_settings
from cadence.interfaces.activity_repository import IActivityRepository
from cadence.interfaces.calendar_provider import ICalendarProvider
from cadence.models.user import CalendarAccount, UserContext
from cadence.services.calendar_gateway import CalendarGateway
from cadence.services.calendar_health import CalendarHealthService
from cadence.services.scheduling_planner import SchedulingPlanner


# ===========================================
# Repository Dependencies
# ===========================================


@lru_cache()
def get_activity_repository() -> IActivityRepository:
    """Get activity repository instance."""
    settings = get_settings()
    if settings.is_production:
        # The production activity store is owned by the host application
        raise NotImplementedError("Inject an IActivityRepository for production use")
    from cadence.infrastructure.local.memory_activity_repository import (
        MemoryActivityRepository,
    )
    return MemoryActivityRepository()


# ===========================================
# Calendar Dependencies
# ===========================================


@lru_cache()
def get_calendar_provider() -> ICalendarProvider:
    """Get external calendar provider instance."""
    settings = get_settings()
    if settings.CALENDAR_PROVIDER == "google":
        from cadence.infrastructure.google.calendar_provider import GoogleCalendarProvider
        return GoogleCalendarProvider(settings, timeout=settings.CALENDAR_CALL_TIMEOUT_SECONDS)
    from cadence.infrastructure.local.memory_calendar_provider import MemoryCalendarProvider
    return MemoryCalendarProvider()


@lru_cache()
def get_calendar_gateway() -> CalendarGateway:
    """Get the retrying, rate-limited calendar gateway."""
    return CalendarGateway.from_settings(get_calendar_provider(), get_settings())


@lru_cache()
def get_calendar_health_service() -> CalendarHealthService:
    settings = get_settings()
    return CalendarHealthService(
        get_calendar_provider(), timeout_seconds=settings.CALENDAR_CALL_TIMEOUT_SECONDS
    )


# ===========================================
# Service Dependencies
# ===========================================


@lru_cache()
def get_scheduling_planner() -> SchedulingPlanner:
    """Get the scheduling planner wired to the configured infrastructure."""
    return SchedulingPlanner(
        get_activity_repository(),
        gateway=get_calendar_gateway(),
        settings=get_settings(),
    )


def build_user_context(
    user_id: str,
    timezone: Optional[str] = None,
    account_id: Optional[str] = None,
    access_token: Optional[str] = None,
) -> UserContext:
    """
    Build the planning context for a user.

    Missing timezones fall back to DEFAULT_TIMEZONE; the calendar account is
    attached only when an account id is given.
    """
    settings = get_settings()
    account = None
    if account_id:
        account = CalendarAccount(
            account_id=account_id,
            calendar_id=settings.GOOGLE_CALENDAR_ID,
            read_all_calendars=settings.GOOGLE_READ_ALL_CALENDARS,
            access_token=access_token,
        )
    return UserContext(
        user_id=user_id,
        timezone=timezone or settings.DEFAULT_TIMEZONE,
        calendar_account=account,
    )
