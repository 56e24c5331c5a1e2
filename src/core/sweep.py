"""
Supervision Scheduler — Occurrence Sweep.

Periodic reconciliation over every active or paused assignment:

1. Overdue open occurrences are marked missed.
2. Assignments whose date range elapsed or whose slots ran out are
   completed once no occurrence is left open.
3. Active assignments with a due slot get a new occurrence (at most one
   open occurrence per assignment), and next_scheduled_at is refreshed.

One bad assignment never halts the sweep: failures are logged and the loop
moves on. Work for a single assignment is serialized by a per-assignment
lock shared with the submission path.

This module is provider-agnostic: it depends on BackendPort and
NotificationPort protocols, not on specific implementations.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from src.core.completions import CompletionTracker, deadline_for, utcnow
from src.core.errors import NotFoundError
from src.core.lifecycle import AssignmentLifecycle
from src.core.locks import AssignmentLocks
from src.core.occurrences import evaluate, validate_schedule
from src.data.models import (
    Assignment,
    AssignmentStatus,
    Completion,
    CompletionStatus,
)

if TYPE_CHECKING:
    from src.ports.backend_port import BackendPort
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep pass."""

    evaluated: int = 0
    generated: int = 0
    missed: int = 0
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class OccurrenceSweep:
    """Generates due occurrences and reconciles assignment state."""

    def __init__(
        self,
        backend: BackendPort,
        tracker: CompletionTracker | None = None,
        lifecycle: AssignmentLifecycle | None = None,
        notifier: NotificationPort | None = None,
        clock: Callable[[], datetime] = utcnow,
        locks: AssignmentLocks | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._locks = locks or AssignmentLocks()
        self._tracker = tracker or CompletionTracker(backend, clock=clock, locks=self._locks)
        self._lifecycle = lifecycle or AssignmentLifecycle(backend)
        self._notifier = notifier

    @property
    def locks(self) -> AssignmentLocks:
        return self._locks

    async def run_once(self) -> SweepReport:
        """Evaluate every active or paused assignment once."""
        report = SweepReport()
        try:
            assignments = await self._backend.list_active_assignments(include_paused=True)
        except Exception as exc:
            logger.error("Sweep aborted: could not list assignments: %s", exc)
            return report

        for assignment in assignments:
            try:
                async with self._locks.get(assignment.id):
                    await self._process(assignment, report)
            except Exception as exc:
                logger.error("Sweep failed for assignment %s: %s", assignment.id, exc)
                report.failed.append(assignment.id)

        logger.info(
            "Sweep done: %d evaluated, %d generated, %d missed, %d completed, %d failed",
            report.evaluated, report.generated, report.missed,
            len(report.completed), len(report.failed),
        )
        return report

    async def _process(self, assignment: Assignment, report: SweepReport) -> None:
        report.evaluated += 1
        now = self._clock()

        report.missed += await self._tracker.sweep_overdue(assignment.id)

        completions = await self._backend.list_completions(assignment_id=assignment.id)
        has_open = any(c.is_open for c in completions)
        last_scheduled = max((c.scheduled_at for c in completions), default=None)

        # An elapsed date range ends the assignment even if its schedule is invalid
        if now.date() > assignment.end_date:
            if not has_open:
                await self._lifecycle.complete(assignment)
                report.completed.append(assignment.id)
            return

        if assignment.status == AssignmentStatus.PAUSED:
            return

        validate_schedule(assignment)
        result = evaluate(assignment, now, last_scheduled)

        if result.exhausted and result.due_at is None:
            if not has_open:
                await self._lifecycle.complete(assignment)
                report.completed.append(assignment.id)
            return

        if result.due_at is None or has_open:
            await self._refresh_next(assignment, result.next_scheduled_at)
            return

        completion = await self._generate(assignment, result.due_at)
        if completion is not None:
            report.generated += 1
        await self._refresh_next(assignment, result.next_scheduled_at)

    async def _generate(
        self, assignment: Assignment, scheduled_at: datetime
    ) -> Completion | None:
        questionnaire = await self._backend.get_questionnaire(assignment.questionnaire_id)
        if questionnaire is None:
            raise NotFoundError("Questionnaire", assignment.questionnaire_id)

        completion = await self._backend.create_completion(
            assignment, scheduled_at, questionnaire,
        )
        if completion is None:
            logger.info(
                "Assignment %s already has an open occurrence, skipping", assignment.id,
            )
            return None

        logger.info(
            "Occurrence %s generated for assignment %s (patient %s) at %s",
            completion.id, assignment.id, assignment.patient_id,
            scheduled_at.isoformat(),
        )

        if self._notifier is not None:
            completion = await self._notify(assignment, completion)
        return completion

    async def _notify(self, assignment: Assignment, completion: Completion) -> Completion:
        title = completion.questionnaire.title if completion.questionnaire else "questionnaire"
        deadline = deadline_for(completion.scheduled_at, completion.deadline_hours)
        text = (
            f"You have a new questionnaire to answer: {title}. "
            f"Please respond by {deadline:%Y-%m-%d %H:%M} UTC."
        )
        try:
            await self._notifier.send_message(assignment.patient_id, text)
        except Exception as exc:
            logger.warning(
                "Failed to notify patient %s about occurrence %s: %s",
                assignment.patient_id, completion.id, exc,
            )
            return completion

        sent = await self._backend.set_completion_status(
            completion.id, CompletionStatus.SENT, expected=(CompletionStatus.PENDING,),
        )
        return sent or completion

    async def _refresh_next(
        self, assignment: Assignment, next_scheduled_at: datetime | None
    ) -> None:
        if assignment.next_scheduled_at == next_scheduled_at:
            return
        await self._backend.set_next_scheduled_at(assignment.id, next_scheduled_at)
