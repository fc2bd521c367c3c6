"""
Calendar gateway.

Wraps an ICalendarProvider with the call contract the planner relies on:
a timeout per call, retries with exponential backoff on transient
failures, and a cap on concurrent calls to respect provider rate limits.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from cadence.core.config import Settings, get_settings
from cadence.core.exceptions import CalendarUnavailableError
from cadence.core.logger import setup_logger
from cadence.interfaces.calendar_provider import ICalendarProvider
from cadence.models.schedule import BusyInterval, ExternalEvent
from cadence.models.user import CalendarAccount

logger = setup_logger(__name__)

T = TypeVar("T")


class CalendarGateway:
    """Retrying, rate-limited access to the external calendar."""

    def __init__(
        self,
        provider: ICalendarProvider,
        max_concurrency: int = 4,
        call_timeout_seconds: float = 10.0,
        max_retries: int = 3,
        retry_base_delay_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.provider = provider
        self.max_concurrency = max_concurrency
        self.call_timeout_seconds = call_timeout_seconds
        self.max_retries = max_retries
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @classmethod
    def from_settings(
        cls, provider: ICalendarProvider, settings: Optional[Settings] = None
    ) -> "CalendarGateway":
        settings = settings or get_settings()
        return cls(
            provider,
            max_concurrency=settings.CALENDAR_MAX_CONCURRENCY,
            call_timeout_seconds=settings.CALENDAR_CALL_TIMEOUT_SECONDS,
            max_retries=settings.CALENDAR_MAX_RETRIES,
            retry_base_delay_seconds=settings.CALENDAR_RETRY_BASE_DELAY_SECONDS,
        )

    async def list_busy_intervals(
        self, account: CalendarAccount, start_at: datetime, end_at: datetime
    ) -> list[BusyInterval]:
        return await self._call_with_retry(
            "list_busy_intervals",
            lambda: self.provider.list_busy_intervals(account, start_at, end_at),
        )

    async def find_event_by_key(
        self, account: CalendarAccount, key: str
    ) -> Optional[ExternalEvent]:
        return await self._call_with_retry(
            f"find_event_by_key({key})",
            lambda: self.provider.find_event_by_key(account, key),
        )

    async def upsert_event(
        self,
        account: CalendarAccount,
        key: str,
        start_at: datetime,
        end_at: datetime,
        title: str,
        event_id: Optional[str] = None,
    ) -> str:
        return await self._call_with_retry(
            f"upsert_event({key})",
            lambda: self.provider.upsert_event(
                account, key, start_at, end_at, title, event_id=event_id
            ),
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        return self.retry_base_delay_seconds * (2 ** (attempt - 1))

    async def _call_with_retry(
        self, operation: str, call: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Run one provider call with timeout and retries.

        Only CalendarUnavailableError and timeouts are retried; anything else
        propagates immediately. The concurrency slot is released while
        backing off.
        """
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self._semaphore:
                    return await asyncio.wait_for(call(), timeout=self.call_timeout_seconds)
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.call_timeout_seconds}s"
            except CalendarUnavailableError as e:
                last_error = e.message

            if attempt < self.max_retries:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Calendar {operation} failed (attempt {attempt}/{self.max_retries}): "
                    f"{last_error}; retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        logger.error(f"Calendar {operation} failed after {self.max_retries} attempts: {last_error}")
        raise CalendarUnavailableError(
            f"Calendar {operation} failed after {self.max_retries} attempts: {last_error}",
            details={"operation": operation},
            attempts=self.max_retries,
        )
