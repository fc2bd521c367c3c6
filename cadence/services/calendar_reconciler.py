"""
Calendar reconciliation for commit-mode planning.

Each accepted occurrence is matched to an external event by its
reconciliation key (never by external event id): missing events are
created, drifted ones updated, matching ones skipped. Nothing is deleted.
"""

from __future__ import annotations

import asyncio

from cadence.core.exceptions import CalendarUnavailableError
from cadence.core.logger import setup_logger
from cadence.models.enums import DecisionOutcome, ReconcileStatus
from cadence.models.schedule import (
    ExternalEvent,
    Occurrence,
    ReconciliationEntry,
    ReconciliationReport,
    SchedulingDecision,
)
from cadence.models.user import CalendarAccount
from cadence.services.calendar_gateway import CalendarGateway
from cadence.utils.datetime_utils import ensure_utc

logger = setup_logger(__name__)


class CalendarReconciler:
    """Idempotently mirrors accepted occurrences into the external calendar."""

    def __init__(self, gateway: CalendarGateway):
        self.gateway = gateway

    async def reconcile(
        self, account: CalendarAccount, decisions: list[SchedulingDecision]
    ) -> ReconciliationReport:
        """
        Reconcile a run's decisions.

        Occurrences are independent, so they are processed concurrently; the
        gateway caps how many calls are in flight. A failed occurrence only
        marks its own entry as failed. If the caller cancels, events created
        so far stay and are found by key on the next run.
        """
        report = ReconciliationReport()
        accepted: list[Occurrence] = []
        for decision in decisions:
            if decision.outcome == DecisionOutcome.ACCEPTED:
                accepted.append(decision.occurrence)
            elif decision.outcome == DecisionOutcome.CONFLICT:
                report.add(
                    ReconciliationEntry(
                        key=decision.occurrence.key,
                        activity_id=decision.occurrence.activity_id,
                        status=ReconcileStatus.CONFLICTED,
                    )
                )

        entries = await asyncio.gather(
            *(self._reconcile_occurrence(account, occurrence) for occurrence in accepted)
        )
        for entry in entries:
            report.add(entry)

        logger.info(
            f"Reconciled {len(accepted)} occurrences for account {account.account_id}: "
            f"created={report.created} updated={report.updated} skipped={report.skipped} "
            f"conflicted={report.conflicted} failed={report.failed}"
        )
        return report

    async def _reconcile_occurrence(
        self, account: CalendarAccount, occurrence: Occurrence
    ) -> ReconciliationEntry:
        key = occurrence.key
        try:
            existing = await self.gateway.find_event_by_key(account, key)
            if existing is None:
                event_id = await self.gateway.upsert_event(
                    account, key, occurrence.start_at, occurrence.end_at, occurrence.title
                )
                status = ReconcileStatus.CREATED
            elif self._matches(existing, occurrence):
                event_id = existing.event_id
                status = ReconcileStatus.SKIPPED
            else:
                event_id = await self.gateway.upsert_event(
                    account,
                    key,
                    occurrence.start_at,
                    occurrence.end_at,
                    occurrence.title,
                    event_id=existing.event_id,
                )
                status = ReconcileStatus.UPDATED
        except CalendarUnavailableError as e:
            logger.error(f"Commit failed for occurrence {key}: {e.message}")
            return ReconciliationEntry(
                key=key,
                activity_id=occurrence.activity_id,
                status=ReconcileStatus.FAILED,
                error=e.message,
            )
        except Exception as e:
            # Cancellation is not an Exception and still propagates
            logger.error(f"Unexpected error committing occurrence {key}: {e}", exc_info=True)
            return ReconciliationEntry(
                key=key,
                activity_id=occurrence.activity_id,
                status=ReconcileStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
            )

        return ReconciliationEntry(
            key=key,
            activity_id=occurrence.activity_id,
            status=status,
            external_event_id=event_id,
        )

    @staticmethod
    def _matches(event: ExternalEvent, occurrence: Occurrence) -> bool:
        return (
            ensure_utc(event.start_at) == ensure_utc(occurrence.start_at)
            and ensure_utc(event.end_at) == ensure_utc(occurrence.end_at)
            and (event.title or "") == occurrence.title
        )
