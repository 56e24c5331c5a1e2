"""
Supervision Scheduler — Data Models.

Assignments tell a patient to answer a questionnaire on a schedule; every
scheduled instance becomes a Completion. Questionnaires are owned centrally
and copied into each completion so history survives later edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class FrequencyType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class AssignmentType(str, Enum):
    IMMEDIATE = "immediate"
    RECURRING = "recurring"


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class CompletionStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    COMPLETED = "completed"
    MISSED = "missed"


# Occurrences that still wait for the patient
OPEN_STATUSES = (CompletionStatus.PENDING, CompletionStatus.SENT)


class QuestionType(str, Enum):
    LIKERT = "likert"
    FREQUENCY = "frequency"
    OPEN_TEXT = "openText"


@dataclass
class Question:
    """A single questionnaire item."""

    id: str
    text: str
    type: QuestionType
    options: list[str] = field(default_factory=list)
    min: int | None = None
    max: int | None = None
    min_label: str | None = None
    max_label: str | None = None


@dataclass
class Questionnaire:
    """A centrally owned questionnaire definition."""

    id: str
    title: str
    questions: list[Question] = field(default_factory=list)
    icon: str = "FileQuestion"
    created_at: datetime | None = None


@dataclass
class Answer:
    question_id: str
    value: str | int | None


@dataclass
class Assignment:
    """A recurring or one-off instruction to answer a questionnaire.

    Window bounds are "HH:MM" strings in UTC; the web client converts the
    therapist's local time before saving.
    """

    id: str
    patient_id: str
    questionnaire_id: str
    start_date: date
    end_date: date
    frequency_type: FrequencyType
    frequency_count: int
    window_start: str                 # e.g. "09:00"
    window_end: str                   # e.g. "21:00"
    deadline_hours: int
    min_hours_between: int = 0
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    assignment_type: AssignmentType = AssignmentType.RECURRING
    next_scheduled_at: datetime | None = None
    assigned_at: datetime | None = None
    questionnaire: Questionnaire | None = None


@dataclass
class Completion:
    """The record of one occurrence: answered, pending or missed."""

    id: str
    assignment_id: str
    patient_id: str
    questionnaire_id: str
    scheduled_at: datetime
    deadline_hours: int
    status: CompletionStatus = CompletionStatus.PENDING
    completed_at: datetime | None = None
    answers: list[Answer] = field(default_factory=list)
    is_delayed: bool = False
    read_by_therapist: bool = False
    questionnaire: Questionnaire | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


@dataclass
class CompletionStats:
    """Aggregate counts consumed by dashboard and statistics views."""

    total: int = 0
    completed: int = 0
    on_time: int = 0
    late: int = 0
    missed: int = 0
    open: int = 0
    unread: int = 0
