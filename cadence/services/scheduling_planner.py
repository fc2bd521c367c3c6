"""
Scheduling planner.

Orchestrates one planning run for a user:
candidate-generated -> frequency-checked -> conflict-checked ->
{accepted | conflict | capped}, plus out_of_window for single-instance
activities that fall outside the window. In commit mode the accepted
occurrences are reconciled into the external calendar.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Optional

from cadence.core.config import Settings, get_settings
from cadence.core.logger import setup_logger
from cadence.interfaces.activity_repository import IActivityRepository
from cadence.models.activity import Activity
from cadence.models.enums import DecisionOutcome, PlanMode, ReconcileStatus, ScheduleType
from cadence.models.schedule import (
    Agenda,
    AgendaSummary,
    Occurrence,
    PlanningWindow,
    ReconciliationEntry,
    ReconciliationReport,
    SchedulingDecision,
)
from cadence.models.user import UserContext
from cadence.services.availability_index import AvailabilityIndex, load_availability
from cadence.services.calendar_gateway import CalendarGateway
from cadence.services.calendar_reconciler import CalendarReconciler
from cadence.services.candidate_generator import CandidateGenerator
from cadence.services.conflict_resolver import ConflictResolver
from cadence.services.frequency_cap import FrequencyCapEnforcer
from cadence.utils.datetime_utils import ensure_utc, get_user_today, now_utc

logger = setup_logger(__name__)

NO_ACCOUNT_ERROR = "No calendar account connected"


class SchedulingPlanner:
    """Produces an agenda for a user's activities over a planning window."""

    def __init__(
        self,
        activity_repo: IActivityRepository,
        gateway: Optional[CalendarGateway] = None,
        generator: Optional[CandidateGenerator] = None,
        cap_enforcer: Optional[FrequencyCapEnforcer] = None,
        resolver: Optional[ConflictResolver] = None,
        reconciler: Optional[CalendarReconciler] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.settings = settings or get_settings()
        self.activity_repo = activity_repo
        self.gateway = gateway
        self.generator = generator or CandidateGenerator.from_settings(self.settings)
        self.cap_enforcer = cap_enforcer or FrequencyCapEnforcer()
        self.resolver = resolver or ConflictResolver()
        if reconciler is None and gateway is not None:
            reconciler = CalendarReconciler(gateway)
        self.reconciler = reconciler
        self._clock = clock

    def default_window(self, user: UserContext) -> PlanningWindow:
        today = get_user_today(user.timezone, self._clock())
        return PlanningWindow(
            start=today, end=today + timedelta(days=self.settings.PLANNING_WINDOW_DAYS)
        )

    async def plan(
        self,
        user: UserContext,
        window: Optional[PlanningWindow] = None,
        mode: PlanMode = PlanMode.DRY_RUN,
    ) -> Agenda:
        """
        Run the planning pipeline.

        A dry run may read busy intervals but never writes to the external
        calendar, and never fails because the calendar is unreachable: the
        decisions are flagged unverified instead. A commit run always returns
        a report; occurrences that could not be written are marked failed.

        Args:
            user: Owner of the activities
            window: Local date window (defaults to today + PLANNING_WINDOW_DAYS)
            mode: dry_run or commit

        Returns:
            Agenda with ordered decisions, summary and (commit only) report
        """
        window = window or self.default_window(user)
        timezone = user.timezone
        now = self._clock()
        window_start, window_end = window.bounds(timezone)

        # Single snapshot for the whole run
        activities = [
            activity
            for activity in await self.activity_repo.list_active(user.user_id)
            if not activity.is_archived
        ]

        decisions: list[SchedulingDecision] = []
        candidates: dict[str, list[Occurrence]] = {}
        by_id: dict[str, Activity] = {}
        stagger_slot = 0
        for activity in activities:
            slot = 0
            if activity.schedule_type == ScheduleType.FLEXIBLE:
                slot = stagger_slot
                stagger_slot += 1
            candidate_set = self.generator.generate(
                activity, window, timezone, now, stagger_slot=slot
            )
            by_id[str(activity.id)] = activity
            candidates[str(activity.id)] = sorted(
                candidate_set.occurrences, key=lambda occurrence: occurrence.start_at
            )
            decisions.extend(
                SchedulingDecision(
                    occurrence=occurrence,
                    outcome=DecisionOutcome.OUT_OF_WINDOW,
                    notes=["Outside the planning window"],
                )
                for occurrence in candidate_set.out_of_window
            )

        index = await load_availability(
            self.activity_repo,
            self.gateway,
            user,
            window_start,
            window_end,
        )
        histories = await self._load_histories(user, by_id, candidates, window_start)

        for activity_id, occurrences in candidates.items():
            decisions.extend(
                self._decide(
                    by_id[activity_id],
                    occurrences,
                    histories.get(activity_id, []),
                    index,
                    timezone,
                )
            )

        decisions.sort(
            key=lambda decision: (ensure_utc(decision.occurrence.start_at), decision.occurrence.title)
        )

        report = None
        if mode == PlanMode.COMMIT:
            report = await self._commit(user, decisions)

        agenda = Agenda(
            user_id=user.user_id,
            window=window,
            mode=mode,
            decisions=decisions,
            external_verified=index.external_verified,
            report=report,
        )
        agenda.summary = self.summarize(agenda)

        counts = agenda.summary.by_outcome
        logger.info(
            f"Planned {len(decisions)} occurrences for user {user.user_id} "
            f"({window.start}..{window.end}, {mode.value}): "
            f"accepted={counts.get(DecisionOutcome.ACCEPTED.value, 0)} "
            f"conflict={counts.get(DecisionOutcome.CONFLICT.value, 0)} "
            f"capped={counts.get(DecisionOutcome.CAPPED.value, 0)} "
            f"out_of_window={counts.get(DecisionOutcome.OUT_OF_WINDOW.value, 0)} "
            f"verified={index.external_verified}"
        )
        return agenda

    async def _load_histories(
        self,
        user: UserContext,
        by_id: dict[str, Activity],
        candidates: dict[str, list[Occurrence]],
        before: datetime,
    ) -> dict[str, list[datetime]]:
        """Past occurrence starts for capped activities that have candidates."""
        capped_ids = [
            activity_id
            for activity_id, occurrences in candidates.items()
            if occurrences and by_id[activity_id].max_frequency_days is not None
        ]
        starts = await asyncio.gather(
            *(
                self.activity_repo.list_occurrence_starts(
                    user.user_id, by_id[activity_id].id, before
                )
                for activity_id in capped_ids
            )
        )
        return {
            activity_id: [ensure_utc(start) for start in history if ensure_utc(start) < before]
            for activity_id, history in zip(capped_ids, starts)
        }

    def _decide(
        self,
        activity: Activity,
        occurrences: list[Occurrence],
        history: list[datetime],
        index: AvailabilityIndex,
        timezone: str,
    ) -> list[SchedulingDecision]:
        """Cap-check and conflict-check one activity's candidates in start order."""
        decisions: list[SchedulingDecision] = []
        prior = list(history)
        for occurrence in occurrences:
            blocking = self.cap_enforcer.blocking_occurrence(
                activity, occurrence.start_at, prior, timezone=timezone
            )
            if blocking is not None:
                decisions.append(
                    SchedulingDecision(
                        occurrence=occurrence,
                        outcome=DecisionOutcome.CAPPED,
                        verified=index.external_verified,
                        notes=[
                            f"Within {activity.max_frequency_days} days of the occurrence "
                            f"at {ensure_utc(blocking).isoformat()}"
                        ],
                    )
                )
                continue

            decision = self.resolver.resolve(
                occurrence, index, verified=index.external_verified
            )
            if decision.outcome == DecisionOutcome.ACCEPTED:
                prior.append(occurrence.start_at)
            elif activity.schedule_type == ScheduleType.FLEXIBLE:
                suggested = self.resolver.suggest_alternative(occurrence, index, timezone)
                if suggested is not None:
                    decision = decision.model_copy(
                        update={
                            "suggested_start_at": suggested,
                            "notes": [
                                *decision.notes,
                                f"Free slot available at {suggested.isoformat()}",
                            ],
                        }
                    )
            decisions.append(decision)
        return decisions

    async def _commit(
        self, user: UserContext, decisions: list[SchedulingDecision]
    ) -> ReconciliationReport:
        if self.reconciler is not None and user.calendar_account is not None:
            return await self.reconciler.reconcile(user.calendar_account, decisions)

        logger.warning(f"Commit requested for user {user.user_id} without a calendar account")
        report = ReconciliationReport()
        for decision in decisions:
            if decision.outcome == DecisionOutcome.ACCEPTED:
                status, error = ReconcileStatus.FAILED, NO_ACCOUNT_ERROR
            elif decision.outcome == DecisionOutcome.CONFLICT:
                status, error = ReconcileStatus.CONFLICTED, None
            else:
                continue
            report.add(
                ReconciliationEntry(
                    key=decision.occurrence.key,
                    activity_id=decision.occurrence.activity_id,
                    status=status,
                    error=error,
                )
            )
        return report

    @staticmethod
    def summarize(agenda: Agenda) -> AgendaSummary:
        """Counts and next steps for display next to the agenda."""
        decisions = agenda.decisions
        if not decisions:
            return AgendaSummary(
                next_steps=["No activities to schedule in the selected date range"]
            )

        by_outcome = Counter(decision.outcome.value for decision in decisions)
        by_type = Counter(decision.occurrence.schedule_type.value for decision in decisions)
        conflicts = by_outcome.get(DecisionOutcome.CONFLICT.value, 0)
        unverified = sum(1 for decision in decisions if not decision.verified)

        next_steps = ["Review the suggested schedule above"]
        if conflicts:
            next_steps.append(f"{conflicts} occurrences conflict with existing events")
        if unverified:
            next_steps.append(
                "External calendar could not be checked; conflicts with it may be missing"
            )
        next_steps.append("Adjust date range or preferences if needed")
        if agenda.mode == PlanMode.DRY_RUN:
            next_steps.append("Run in commit mode to create actual calendar events")
        elif agenda.report is not None and agenda.report.failed:
            next_steps.append(
                f"{agenda.report.failed} occurrences could not be written; commit again to retry"
            )

        return AgendaSummary(
            total=len(decisions),
            by_outcome=dict(by_outcome),
            by_schedule_type=dict(by_type),
            conflicts=conflicts,
            unverified=unverified,
            next_steps=next_steps,
        )
