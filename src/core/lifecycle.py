"""Assignment status lifecycle.

active <-> paused by manual toggle; active/paused -> completed once the date
range elapses or no occurrences remain. completed is terminal.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from src.core.errors import NotFoundError
from src.data.models import Assignment, AssignmentStatus

if TYPE_CHECKING:
    from src.ports.backend_port import BackendPort

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"          # endDate passed or occurrences exhausted


_TRANSITIONS: dict[tuple[AssignmentStatus, LifecycleEvent], AssignmentStatus] = {
    (AssignmentStatus.ACTIVE, LifecycleEvent.PAUSE): AssignmentStatus.PAUSED,
    (AssignmentStatus.PAUSED, LifecycleEvent.RESUME): AssignmentStatus.ACTIVE,
    (AssignmentStatus.ACTIVE, LifecycleEvent.END): AssignmentStatus.COMPLETED,
    (AssignmentStatus.PAUSED, LifecycleEvent.END): AssignmentStatus.COMPLETED,
}


def transition(status: AssignmentStatus, event: LifecycleEvent) -> AssignmentStatus:
    """Next status for event; pairs not in the table leave status unchanged."""
    return _TRANSITIONS.get((AssignmentStatus(status), event), AssignmentStatus(status))


def toggle_event(status: AssignmentStatus) -> LifecycleEvent | None:
    """The event a pause/resume button press maps to, None once completed."""
    if status == AssignmentStatus.ACTIVE:
        return LifecycleEvent.PAUSE
    if status == AssignmentStatus.PAUSED:
        return LifecycleEvent.RESUME
    return None


class AssignmentLifecycle:
    """Persists status transitions through the backend port."""

    def __init__(self, backend: BackendPort) -> None:
        self._backend = backend

    async def apply(self, assignment_id: str, event: LifecycleEvent) -> Assignment:
        assignment = await self._backend.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return await self._apply_to(assignment, event)

    async def _apply_to(
        self, assignment: Assignment, event: LifecycleEvent
    ) -> Assignment:
        new_status = transition(assignment.status, event)
        if new_status == assignment.status:
            logger.debug(
                "Assignment %s: %s ignored in status %s",
                assignment.id, event.value, assignment.status.value,
            )
            return assignment

        updated = await self._backend.set_assignment_status(assignment.id, new_status)
        if updated is None:
            raise NotFoundError("Assignment", assignment.id)
        if new_status == AssignmentStatus.COMPLETED:
            updated = await self._backend.set_next_scheduled_at(assignment.id, None) or updated

        logger.info(
            "Assignment %s: %s -> %s",
            assignment.id, assignment.status.value, new_status.value,
        )
        return updated

    async def pause(self, assignment_id: str) -> Assignment:
        return await self.apply(assignment_id, LifecycleEvent.PAUSE)

    async def resume(self, assignment_id: str) -> Assignment:
        return await self.apply(assignment_id, LifecycleEvent.RESUME)

    async def toggle(self, assignment_id: str) -> Assignment:
        assignment = await self._backend.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        event = toggle_event(assignment.status)
        if event is None:
            return assignment
        return await self._apply_to(assignment, event)

    async def complete(self, assignment: Assignment) -> Assignment:
        return await self._apply_to(assignment, LifecycleEvent.END)
