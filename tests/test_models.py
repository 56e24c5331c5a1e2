"""Tests for src.data.models — scheduling dataclasses."""

from dataclasses import asdict
from datetime import date, datetime, timezone

from src.data.models import (
    OPEN_STATUSES,
    Assignment,
    AssignmentStatus,
    AssignmentType,
    Completion,
    CompletionStats,
    CompletionStatus,
    FrequencyType,
    Question,
    QuestionType,
    Questionnaire,
)


def test_assignment_defaults():
    assignment = Assignment(
        id="1",
        patient_id="7",
        questionnaire_id="3",
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 30),
        frequency_type=FrequencyType.WEEKLY,
        frequency_count=2,
        window_start="09:00",
        window_end="21:00",
        deadline_hours=24,
    )
    assert assignment.min_hours_between == 0
    assert assignment.status == AssignmentStatus.ACTIVE
    assert assignment.assignment_type == AssignmentType.RECURRING
    assert assignment.next_scheduled_at is None
    assert assignment.questionnaire is None


def test_completion_defaults():
    completion = Completion(
        id="10",
        assignment_id="1",
        patient_id="7",
        questionnaire_id="3",
        scheduled_at=datetime(2026, 3, 2, 9, tzinfo=timezone.utc),
        deadline_hours=2,
    )
    assert completion.status == CompletionStatus.PENDING
    assert completion.answers == []
    assert completion.is_delayed is False
    assert completion.read_by_therapist is False
    assert completion.completed_at is None


def test_open_statuses():
    assert set(OPEN_STATUSES) == {CompletionStatus.PENDING, CompletionStatus.SENT}


def test_completion_is_open():
    completion = Completion(
        id="10", assignment_id="1", patient_id="7", questionnaire_id="3",
        scheduled_at=datetime(2026, 3, 2, 9, tzinfo=timezone.utc), deadline_hours=2,
    )
    for status, expected in [
        (CompletionStatus.PENDING, True),
        (CompletionStatus.SENT, True),
        (CompletionStatus.COMPLETED, False),
        (CompletionStatus.MISSED, False),
    ]:
        completion.status = status
        assert completion.is_open is expected


def test_enums_compare_to_wire_strings():
    assert FrequencyType.DAILY == "daily"
    assert AssignmentType("immediate") is AssignmentType.IMMEDIATE
    assert QuestionType.OPEN_TEXT.value == "openText"


def test_questionnaire_serializable():
    questionnaire = Questionnaire(
        id="3",
        title="Sleep diary",
        questions=[Question(id="q1", text="Hours slept?", type=QuestionType.OPEN_TEXT)],
    )
    data = asdict(questionnaire)
    assert data["title"] == "Sleep diary"
    assert data["icon"] == "FileQuestion"
    assert data["questions"][0]["options"] == []


def test_stats_start_at_zero():
    assert asdict(CompletionStats()) == {
        "total": 0, "completed": 0, "on_time": 0, "late": 0,
        "missed": 0, "open": 0, "unread": 0,
    }
