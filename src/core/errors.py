"""Scheduling error kinds.

Every error here is recoverable at the level of a single assignment or
completion: the sweep logs and moves on, the submission path surfaces them
to the caller.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for assignment / completion failures."""


class NotFoundError(SchedulingError):
    """Unknown assignment, completion or questionnaire id."""

    def __init__(self, kind: str, object_id: str) -> None:
        super().__init__(f"{kind} {object_id!r} not found")
        self.kind = kind
        self.object_id = object_id


class InvalidScheduleError(SchedulingError):
    """Malformed date range, non-positive frequency or inverted window."""


class AlreadyCompletedError(SchedulingError):
    """The occurrence is closed (completed or missed) and cannot be answered again."""

    def __init__(self, completion_id: str, status: str = "completed") -> None:
        super().__init__(f"Completion {completion_id!r} is already {status}")
        self.completion_id = completion_id
        self.status = status


class AssignmentInactiveError(SchedulingError):
    """Submission against a paused or completed assignment."""

    def __init__(self, assignment_id: str, status: str) -> None:
        super().__init__(f"Assignment {assignment_id!r} is {status}")
        self.assignment_id = assignment_id
        self.status = status
