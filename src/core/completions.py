"""
Supervision Scheduler — Completion Tracker.

Records patient answers against an open occurrence, classifies lateness and
closes occurrences whose deadline elapsed unanswered. This is the only place
where lateness is computed; adapters and views read the stored is_delayed.

Deadline expiry is a pure comparison of stored timestamps with the clock:
no timers, only periodic reconciliation by the sweep.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from src.core.errors import (
    AlreadyCompletedError,
    AssignmentInactiveError,
    NotFoundError,
)
from src.data.models import (
    OPEN_STATUSES,
    Answer,
    AssignmentStatus,
    Completion,
    CompletionStats,
    CompletionStatus,
)

if TYPE_CHECKING:
    from src.core.locks import AssignmentLocks
    from src.ports.backend_port import BackendPort

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def deadline_for(scheduled_at: datetime, deadline_hours: int) -> datetime:
    return scheduled_at + timedelta(hours=deadline_hours)


def is_delayed(
    scheduled_at: datetime, completed_at: datetime, deadline_hours: int
) -> bool:
    """True iff completed_at is strictly after the deadline.

    Answering exactly at the deadline counts as on time.
    """
    return completed_at > deadline_for(scheduled_at, deadline_hours)


def is_overdue(completion: Completion, now: datetime) -> bool:
    """Open occurrence whose response window has elapsed."""
    return completion.is_open and now > deadline_for(
        completion.scheduled_at, completion.deadline_hours
    )


def summarize(completions: Iterable[Completion]) -> CompletionStats:
    """Aggregate on-time / late / missed counts for reporting views."""
    stats = CompletionStats()
    for c in completions:
        stats.total += 1
        if c.status == CompletionStatus.COMPLETED:
            stats.completed += 1
            if c.is_delayed:
                stats.late += 1
            else:
                stats.on_time += 1
        elif c.status == CompletionStatus.MISSED:
            stats.missed += 1
        else:
            stats.open += 1
        if c.status == CompletionStatus.COMPLETED and not c.read_by_therapist:
            stats.unread += 1
    return stats


class CompletionTracker:
    """Applies patient and therapist actions to occurrences."""

    def __init__(
        self,
        backend: BackendPort,
        clock: Callable[[], datetime] = utcnow,
        locks: AssignmentLocks | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._locks = locks

    async def _require(self, completion_id: str) -> Completion:
        completion = await self._backend.get_completion(completion_id)
        if completion is None:
            raise NotFoundError("Completion", completion_id)
        return completion

    async def submit_answers(
        self, completion_id: str, answers: list[Answer]
    ) -> Completion:
        """Record the patient's answers and classify lateness.

        Raises:
            NotFoundError: unknown completion.
            AlreadyCompletedError: the occurrence is already closed, or a
                concurrent submission closed it first.
            AssignmentInactiveError: the owning assignment is paused or
                completed.
        """
        completion = await self._require(completion_id)
        if self._locks is None:
            return await self._submit(completion, answers)
        async with self._locks.get(completion.assignment_id):
            return await self._submit(completion, answers)

    async def _submit(
        self, completion: Completion, answers: list[Answer]
    ) -> Completion:
        if not completion.is_open:
            raise AlreadyCompletedError(completion.id, completion.status.value)

        assignment = await self._backend.get_assignment(completion.assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", completion.assignment_id)
        if assignment.status != AssignmentStatus.ACTIVE:
            raise AssignmentInactiveError(assignment.id, assignment.status.value)

        now = self._clock()
        delayed = is_delayed(completion.scheduled_at, now, completion.deadline_hours)
        updated = await self._backend.submit_completion(
            completion.id, list(answers), completed_at=now, is_delayed=delayed,
        )
        if updated is None:
            # Lost the conditional write to another submission or the sweep
            current = await self._require(completion.id)
            raise AlreadyCompletedError(completion.id, current.status.value)

        logger.info(
            "Completion %s answered (%d answers, %s)",
            completion.id, len(answers), "late" if delayed else "on time",
        )
        return updated

    async def mark_missed(self, completion_id: str) -> bool:
        """Close an overdue open occurrence as missed.

        Returns True if the occurrence transitioned, False if it is already
        missed or its deadline has not elapsed yet.

        Raises:
            NotFoundError: unknown completion.
            AlreadyCompletedError: the patient already answered.
        """
        completion = await self._require(completion_id)
        if completion.status == CompletionStatus.COMPLETED:
            raise AlreadyCompletedError(completion_id)
        if completion.status == CompletionStatus.MISSED:
            return False
        if not is_overdue(completion, self._clock()):
            return False

        updated = await self._backend.set_completion_status(
            completion_id, CompletionStatus.MISSED, expected=OPEN_STATUSES,
        )
        if updated is None:
            logger.info("Completion %s closed concurrently, not marking missed", completion_id)
            return False
        logger.info("Completion %s marked missed", completion_id)
        return True

    async def mark_read(self, completion_id: str) -> Completion:
        """Flag the completion as reviewed by the therapist. Idempotent."""
        updated = await self._backend.mark_completion_read(completion_id)
        if updated is None:
            raise NotFoundError("Completion", completion_id)
        return updated

    async def reschedule(
        self, completion_id: str, scheduled_at: datetime
    ) -> Completion:
        """Move an open occurrence's due time (therapist action)."""
        completion = await self._require(completion_id)
        if not completion.is_open:
            raise AlreadyCompletedError(completion_id, completion.status.value)
        updated = await self._backend.reschedule_completion(completion_id, scheduled_at)
        if updated is None:
            current = await self._require(completion_id)
            raise AlreadyCompletedError(completion_id, current.status.value)
        logger.info(
            "Completion %s rescheduled to %s", completion_id, scheduled_at.isoformat(),
        )
        return updated

    async def sweep_overdue(self, assignment_id: str) -> int:
        """Mark every overdue open occurrence of an assignment as missed."""
        now = self._clock()
        missed = 0
        for completion in await self._backend.list_completions(assignment_id=assignment_id):
            if not is_overdue(completion, now):
                continue
            updated = await self._backend.set_completion_status(
                completion.id, CompletionStatus.MISSED, expected=OPEN_STATUSES,
            )
            if updated is not None:
                missed += 1
                logger.info("Completion %s marked missed", completion.id)
        return missed

    async def stats_for_patient(self, patient_id: str) -> CompletionStats:
        return summarize(await self._backend.list_completions(patient_id=patient_id))
