"""
External calendar health check.

Probes the provider once with a small busy-interval query. No retries: a
health check reports the current state, it does not try to fix it.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import Callable, Optional

from cadence.core.exceptions import CalendarUnavailableError
from cadence.core.logger import setup_logger
from cadence.interfaces.calendar_provider import ICalendarProvider
from cadence.models.enums import HealthStatus
from cadence.models.schedule import CalendarHealth
from cadence.models.user import CalendarAccount
from cadence.utils.datetime_utils import now_utc

logger = setup_logger(__name__)

PROBE_WINDOW = timedelta(hours=1)


class CalendarHealthService:
    def __init__(
        self,
        provider: ICalendarProvider,
        timeout_seconds: float = 10.0,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self._timer = timer

    async def check(self, account: Optional[CalendarAccount]) -> CalendarHealth:
        if account is None:
            return CalendarHealth(
                status=HealthStatus.WARNING, message="No calendar account connected"
            )
        if not account.access_token:
            return CalendarHealth(
                status=HealthStatus.WARNING, message="Calendar account has no access token"
            )

        started = self._timer()
        probe_start = now_utc()
        try:
            await asyncio.wait_for(
                self.provider.list_busy_intervals(account, probe_start, probe_start + PROBE_WINDOW),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Calendar health check timed out for account {account.account_id}")
            return CalendarHealth(
                status=HealthStatus.UNHEALTHY,
                message="Calendar API check failed",
                error=f"timed out after {self.timeout_seconds}s",
                response_time_ms=self._elapsed_ms(started),
            )
        except CalendarUnavailableError as e:
            logger.warning(f"Calendar health check failed for account {account.account_id}: {e}")
            return CalendarHealth(
                status=HealthStatus.UNHEALTHY,
                message="Calendar API check failed",
                error=e.message,
                response_time_ms=self._elapsed_ms(started),
            )

        return CalendarHealth(
            status=HealthStatus.HEALTHY,
            message="Calendar API accessible",
            response_time_ms=self._elapsed_ms(started),
        )

    def _elapsed_ms(self, started: float) -> float:
        return round((self._timer() - started) * 1000, 2)
