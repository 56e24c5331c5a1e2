"""Backend port — abstract interface for assignment and completion storage.

Core modules depend on this protocol, never on a specific backend.
Lookups return None for unknown ids. Conditional writes return the updated
record, or None when the record was no longer in the expected state.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from src.data.models import (
    Answer,
    Assignment,
    AssignmentStatus,
    Completion,
    CompletionStatus,
    Questionnaire,
)


class BackendError(Exception):
    """Raised when any backend operation fails at the transport level."""


class SessionExpiredError(BackendError):
    """The backend rejected the session token (HTTP 401)."""


class BackendPort(Protocol):
    """Abstract backend interface used by core modules."""

    async def list_active_assignments(
        self, include_paused: bool = False
    ) -> list[Assignment]: ...

    async def get_assignment(self, assignment_id: str) -> Assignment | None: ...

    async def set_assignment_status(
        self, assignment_id: str, status: AssignmentStatus
    ) -> Assignment | None: ...

    async def set_next_scheduled_at(
        self, assignment_id: str, next_scheduled_at: datetime | None
    ) -> Assignment | None: ...

    async def create_completion(
        self,
        assignment: Assignment,
        scheduled_at: datetime,
        questionnaire: Questionnaire | None,
    ) -> Completion | None: ...

    async def get_completion(self, completion_id: str) -> Completion | None: ...

    async def list_completions(
        self,
        assignment_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[Completion]: ...

    async def submit_completion(
        self,
        completion_id: str,
        answers: list[Answer],
        completed_at: datetime,
        is_delayed: bool,
    ) -> Completion | None: ...

    async def set_completion_status(
        self,
        completion_id: str,
        status: CompletionStatus,
        expected: Sequence[CompletionStatus],
    ) -> Completion | None: ...

    async def mark_completion_read(self, completion_id: str) -> Completion | None: ...

    async def reschedule_completion(
        self, completion_id: str, scheduled_at: datetime
    ) -> Completion | None: ...

    async def get_questionnaire(
        self, questionnaire_id: str
    ) -> Questionnaire | None: ...
