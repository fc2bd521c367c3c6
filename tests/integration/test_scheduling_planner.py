"""
Integration tests for SchedulingPlanner with the in-memory repository and
calendar provider.
"""

from datetime import date, datetime, time, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from cadence.core.config import Settings
from cadence.infrastructure.google.calendar_provider import GoogleCalendarProvider
from cadence.infrastructure.local.memory_activity_repository import MemoryActivityRepository
from cadence.infrastructure.local.memory_calendar_provider import MemoryCalendarProvider
from cadence.models.activity import (
    Activity,
    DeadlineSchedule,
    FlexibleSchedule,
    RecurringStrictSchedule,
    StrictSchedule,
)
from cadence.models.enums import (
    BusySource,
    DecisionOutcome,
    Frequency,
    PlanMode,
    ReconcileStatus,
    ScheduleType,
)
from cadence.models.recurrence import RecurrenceRule
from cadence.models.schedule import BusyInterval, PlanningWindow
from cadence.models.user import CalendarAccount, UserContext
from cadence.services.calendar_gateway import CalendarGateway
from cadence.services.scheduling_planner import SchedulingPlanner
from cadence.utils.datetime_utils import local_instant

UTC = timezone.utc
TZ = "America/Los_Angeles"
USER_ID = "test_user"
ACCOUNT = CalendarAccount(account_id="acct", access_token="token")
USER = UserContext(user_id=USER_ID, timezone=TZ, calendar_account=ACCOUNT)
WINDOW = PlanningWindow(start=date(2025, 6, 2), end=date(2025, 6, 8))
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


async def _no_sleep(delay: float) -> None:
    return None


def _local(day: int, hour: int, minute: int = 0) -> datetime:
    return local_instant(date(2025, 6, day), time(hour, minute), TZ)


def _evening_run() -> Activity:
    rule = RecurrenceRule(frequency=Frequency.WEEKLY, by_day={1, 3, 5}, start_date=date(2025, 6, 1))
    return Activity(
        id=uuid4(),
        user_id=USER_ID,
        name="Evening run",
        schedule=RecurringStrictSchedule(
            rule=rule, occurrence_time_start=time(18, 0), occurrence_time_end=time(19, 0)
        ),
    )


def _reading(max_frequency_days: int | None = 7) -> Activity:
    return Activity(
        id=uuid4(),
        user_id=USER_ID,
        name="Reading",
        schedule=FlexibleSchedule(),
        max_frequency_days=max_frequency_days,
    )


@pytest.fixture
def repo():
    return MemoryActivityRepository()


@pytest.fixture
def provider():
    return MemoryCalendarProvider()


@pytest.fixture
def planner(repo, provider):
    gateway = CalendarGateway(provider, sleep=_no_sleep)
    return SchedulingPlanner(repo, gateway=gateway, settings=Settings(), clock=lambda: NOW)


class TestDryRun:
    """Dry-run planning."""

    @pytest.mark.asyncio
    async def test_classifies_and_orders_decisions(self, planner, repo, provider):
        run = repo.add(_evening_run())
        repo.add(_reading())
        provider.add_event(ACCOUNT, "Dentist", _local(4, 18, 30), _local(4, 19, 30))

        agenda = await planner.plan(USER, WINDOW)

        outcomes = [(d.occurrence.title, d.occurrence.occurrence_date, d.outcome) for d in agenda.decisions]
        assert outcomes == [
            ("Evening run", date(2025, 6, 2), DecisionOutcome.ACCEPTED),
            ("Reading", date(2025, 6, 2), DecisionOutcome.ACCEPTED),
            ("Evening run", date(2025, 6, 4), DecisionOutcome.CONFLICT),
            ("Evening run", date(2025, 6, 6), DecisionOutcome.ACCEPTED),
        ]
        conflict = agenda.decisions[2]
        assert conflict.occurrence.activity_id == run.id
        assert conflict.conflicting_interval.title == "Dentist"
        assert conflict.suggested_start_at is None
        assert agenda.external_verified
        assert agenda.report is None
        assert agenda.mode == PlanMode.DRY_RUN

    @pytest.mark.asyncio
    async def test_performs_no_writes(self, planner, repo, provider):
        repo.add(_evening_run())

        await planner.plan(USER, WINDOW)

        assert provider.create_calls == 0
        assert provider.update_calls == 0
        assert provider.events(ACCOUNT) == []

    @pytest.mark.asyncio
    async def test_summary(self, planner, repo, provider):
        repo.add(_evening_run())
        provider.add_event(ACCOUNT, "Dentist", _local(4, 18, 30), _local(4, 19, 30))

        agenda = await planner.plan(USER, WINDOW)

        summary = agenda.summary
        assert summary.total == 3
        assert summary.by_outcome == {"accepted": 2, "conflict": 1}
        assert summary.by_schedule_type == {"recurring_strict": 3}
        assert summary.conflicts == 1
        assert summary.unverified == 0
        assert "Run in commit mode to create actual calendar events" in summary.next_steps

    @pytest.mark.asyncio
    async def test_empty_plan(self, planner):
        agenda = await planner.plan(USER, WINDOW)
        assert agenda.decisions == []
        assert agenda.summary.next_steps == [
            "No activities to schedule in the selected date range"
        ]

    @pytest.mark.asyncio
    async def test_default_window_from_clock(self, repo, provider):
        planner = SchedulingPlanner(
            repo,
            gateway=CalendarGateway(provider, sleep=_no_sleep),
            settings=Settings(PLANNING_WINDOW_DAYS=3),
            clock=lambda: NOW,
        )
        agenda = await planner.plan(USER)
        # 2025-06-01 12:00 UTC is 05:00 on June 1 in Los Angeles
        assert agenda.window == PlanningWindow(start=date(2025, 6, 1), end=date(2025, 6, 4))

    @pytest.mark.asyncio
    async def test_archived_activities_ignored(self, planner, repo):
        repo.add(_reading().model_copy(update={"archived_at": NOW}))
        agenda = await planner.plan(USER, WINDOW)
        assert agenda.decisions == []

    @pytest.mark.asyncio
    async def test_own_committed_intervals_block(self, planner, repo):
        repo.add(_reading())
        repo.add_committed_interval(
            USER_ID,
            BusyInterval(
                start_at=_local(2, 18, 30),
                end_at=_local(2, 20, 0),
                source=BusySource.OWN_ACTIVITY,
                title="Cooking class",
            ),
        )

        agenda = await planner.plan(USER, WINDOW)

        [decision] = agenda.decisions
        assert decision.outcome == DecisionOutcome.CONFLICT
        assert decision.conflicting_interval.source == BusySource.OWN_ACTIVITY

    @pytest.mark.asyncio
    async def test_flexible_conflict_gets_suggestion(self, planner, repo, provider):
        repo.add(_reading())
        provider.add_event(ACCOUNT, "Dinner", _local(2, 19, 0), _local(2, 20, 0))

        agenda = await planner.plan(USER, WINDOW)

        [decision] = agenda.decisions
        assert decision.outcome == DecisionOutcome.CONFLICT
        assert decision.suggested_start_at == _local(2, 7, 0)
        # The occurrence itself is never moved
        assert decision.occurrence.start_at == _local(2, 19, 0)

    @pytest.mark.asyncio
    async def test_out_of_window(self, planner, repo):
        start = _local(20, 10)
        repo.add(
            Activity(
                id=uuid4(),
                user_id=USER_ID,
                name="Dentist",
                schedule=StrictSchedule(start_time=start, end_time=start + timedelta(hours=1)),
            )
        )
        repo.add(
            Activity(
                id=uuid4(),
                user_id=USER_ID,
                name="Tax forms",
                schedule=DeadlineSchedule(deadline=_local(30, 17)),
            )
        )

        agenda = await planner.plan(USER, WINDOW)

        assert [d.outcome for d in agenda.decisions] == [
            DecisionOutcome.OUT_OF_WINDOW,
            DecisionOutcome.OUT_OF_WINDOW,
        ]


class TestFrequencyCap:
    """Frequency cap inside a planning run."""

    @pytest.mark.asyncio
    async def test_history_before_window_caps_first_candidate(self, planner, repo):
        reading = repo.add(_reading(max_frequency_days=3))
        repo.record_occurrence(USER_ID, reading.id, _local(1, 9, 0))

        agenda = await planner.plan(USER, WINDOW)

        outcomes = [(d.occurrence.occurrence_date, d.outcome) for d in agenda.decisions]
        assert outcomes == [
            (date(2025, 6, 2), DecisionOutcome.CAPPED),
            (date(2025, 6, 5), DecisionOutcome.ACCEPTED),
            (date(2025, 6, 8), DecisionOutcome.ACCEPTED),
        ]
        assert agenda.decisions[0].notes

    @pytest.mark.asyncio
    async def test_cap_applies_to_recurring_rules(self, planner, repo):
        run = _evening_run().model_copy(update={"max_frequency_days": 3})
        repo.add(run)

        agenda = await planner.plan(USER, WINDOW)

        # Mon accepted; Wed is 2 days later (capped); Fri is 4 days after Mon
        assert [d.outcome for d in agenda.decisions] == [
            DecisionOutcome.ACCEPTED,
            DecisionOutcome.CAPPED,
            DecisionOutcome.ACCEPTED,
        ]


class TestDegradedMode:
    """Planning when the external calendar is unreachable."""

    @pytest.mark.asyncio
    async def test_dry_run_completes_unverified(self, planner, repo, provider):
        repo.add(_evening_run())
        repo.add(_reading())
        provider.unavailable = True

        agenda = await planner.plan(USER, WINDOW)

        assert not agenda.external_verified
        assert len(agenda.decisions) == 4
        assert all(not d.verified for d in agenda.decisions)
        assert agenda.summary.unverified == 4
        assert all(d.outcome == DecisionOutcome.ACCEPTED for d in agenda.decisions)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, planner, repo, provider):
        repo.add(_reading())
        provider.busy_failures = 2

        agenda = await planner.plan(USER, WINDOW)

        assert agenda.external_verified

    @pytest.mark.asyncio
    async def test_no_account_plans_own_intervals_only(self, planner, repo):
        repo.add(_reading())
        agenda = await planner.plan(UserContext(user_id=USER_ID, timezone=TZ), WINDOW)
        assert agenda.external_verified
        assert agenda.decisions[0].outcome == DecisionOutcome.ACCEPTED


class TestCommit:
    """Commit-mode reconciliation."""

    @pytest.mark.asyncio
    async def test_creates_events_for_accepted(self, planner, repo, provider):
        repo.add(_evening_run())
        provider.add_event(ACCOUNT, "Dentist", _local(4, 18, 30), _local(4, 19, 30))

        agenda = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        report = agenda.report
        assert report.created == 2
        assert report.conflicted == 1
        assert report.complete
        assert provider.create_calls == 2

    @pytest.mark.asyncio
    async def test_second_commit_creates_nothing(self, planner, repo, provider):
        repo.add(_evening_run())
        repo.add(_reading())

        first = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)
        second = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        assert first.report.created == 4
        assert second.report.created == 0
        assert second.report.skipped == 4
        assert provider.create_calls == 4
        # Events from the first run do not conflict with their own occurrences
        assert [d.outcome for d in second.decisions] == [d.outcome for d in first.decisions]

    @pytest.mark.asyncio
    async def test_changed_activity_updates_event(self, planner, repo, provider):
        run = repo.add(_evening_run())
        await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        repo.add(run.model_copy(update={"name": "Evening jog"}))
        agenda = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        assert agenda.report.updated == 3
        assert agenda.report.created == 0
        assert {e.title for e in provider.events(ACCOUNT)} == {"Evening jog"}

    @pytest.mark.asyncio
    async def test_partial_failure_reported(self, planner, repo, provider):
        run = repo.add(_evening_run())
        provider.failing_keys = {f"{run.id}:2025-06-04"}

        agenda = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        report = agenda.report
        assert report.created == 2
        assert report.failed == 1
        [failed] = [e for e in report.entries if e.status == ReconcileStatus.FAILED]
        assert failed.key == f"{run.id}:2025-06-04"
        assert any("commit again" in step for step in agenda.summary.next_steps)

    @pytest.mark.asyncio
    async def test_unavailable_calendar_still_returns_report(self, planner, repo, provider):
        repo.add(_reading())
        provider.unavailable = True

        agenda = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        assert agenda.report.failed == 1
        assert not agenda.external_verified

    @pytest.mark.asyncio
    async def test_without_account_marks_failed(self, planner, repo):
        repo.add(_reading())

        agenda = await planner.plan(
            UserContext(user_id=USER_ID, timezone=TZ), WINDOW, mode=PlanMode.COMMIT
        )

        [entry] = agenda.report.entries
        assert entry.status == ReconcileStatus.FAILED
        assert entry.error == "No calendar account connected"


class TestScheduleTypes:
    """Decisions carry the schedule type of their activity."""

    @pytest.mark.asyncio
    async def test_types(self, planner, repo):
        repo.add(_evening_run())
        repo.add(_reading())
        agenda = await planner.plan(USER, WINDOW)
        assert agenda.summary.by_schedule_type == {
            ScheduleType.RECURRING_STRICT.value: 3,
            ScheduleType.FLEXIBLE.value: 1,
        }


class TestRecommit:
    """Planning again after events have been written."""

    @pytest.mark.asyncio
    async def test_committed_event_blocks_other_activities(self, planner, repo, provider):
        repo.add(
            Activity(
                id=uuid4(),
                user_id=USER_ID,
                name="Dinner party",
                schedule=StrictSchedule(start_time=_local(4, 18), end_time=_local(4, 20)),
            )
        )
        await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        rule = RecurrenceRule(frequency=Frequency.WEEKLY, by_day={3}, start_date=date(2025, 6, 1))
        repo.add(
            Activity(
                id=uuid4(),
                user_id=USER_ID,
                name="Wednesday run",
                schedule=RecurringStrictSchedule(
                    rule=rule, occurrence_time_start=time(18, 30), occurrence_time_end=time(19, 30)
                ),
            )
        )
        agenda = await planner.plan(USER, WINDOW)

        outcomes = [(d.occurrence.title, d.outcome) for d in agenda.decisions]
        assert outcomes == [
            ("Dinner party", DecisionOutcome.ACCEPTED),
            ("Wednesday run", DecisionOutcome.CONFLICT),
        ]
        assert agenda.decisions[1].conflicting_interval.title == "Dinner party"

    @pytest.mark.asyncio
    async def test_deadline_recommit_across_lead_time_threshold(self, repo, provider):
        deadline = _local(8, 17)
        clock = [deadline - timedelta(weeks=1, minutes=1)]
        planner = SchedulingPlanner(
            repo,
            gateway=CalendarGateway(provider, sleep=_no_sleep),
            settings=Settings(),
            clock=lambda: clock[0],
        )
        repo.add(
            Activity(
                id=uuid4(),
                user_id=USER_ID,
                name="Taxes",
                schedule=DeadlineSchedule(deadline=deadline),
            )
        )

        first = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)
        clock[0] += timedelta(minutes=2)
        second = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        assert first.report.created == 1
        assert second.report.created == 0
        assert second.report.updated == 1
        [event] = provider.events(ACCOUNT)
        assert event.title == "Complete: Taxes"
        assert event.start_at == _local(7, 14)


class TestCommitWithGoogle:
    """Commit against the Google provider on a mocked transport."""

    @pytest.mark.asyncio
    async def test_malformed_write_response_still_returns_report(self, repo):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"items": []})
            return httpx.Response(200, text="<html>temporarily unavailable</html>")

        provider = GoogleCalendarProvider(
            Settings(GOOGLE_CALENDAR_API_BASE="https://calendar.test/v3"),
            transport=httpx.MockTransport(handler),
        )
        planner = SchedulingPlanner(
            repo,
            gateway=CalendarGateway(provider, sleep=_no_sleep),
            settings=Settings(),
            clock=lambda: NOW,
        )
        repo.add(_evening_run())

        agenda = await planner.plan(USER, WINDOW, mode=PlanMode.COMMIT)

        assert agenda.report.failed == 3
        assert agenda.report.created == 0
        assert any("commit again" in step for step in agenda.summary.next_steps)
