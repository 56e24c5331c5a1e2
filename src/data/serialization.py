"""
Supervision Scheduler — Record serialization.

Converts between the dataclasses in src.data.models and the snake_case JSON
records used both by the platform REST API and by the SQLite store's JSON
columns. Numeric ids from the backend become strings; missing optional
values become None.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from src.core.session import optional_id
from src.data.models import (
    Answer,
    Assignment,
    AssignmentStatus,
    AssignmentType,
    Completion,
    CompletionStatus,
    FrequencyType,
    Question,
    QuestionType,
    Questionnaire,
)


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _hhmm(value: Any) -> str:
    return str(value).strip()[:5]


def question_from_dict(data: dict) -> Question:
    return Question(
        id=str(data["id"]),
        text=data.get("text", ""),
        type=QuestionType(data.get("type", QuestionType.LIKERT.value)),
        options=list(data.get("options") or []),
        min=data.get("min"),
        max=data.get("max"),
        min_label=data.get("minLabel", data.get("min_label")),
        max_label=data.get("maxLabel", data.get("max_label")),
    )


def question_to_dict(question: Question) -> dict:
    data: dict[str, Any] = {
        "id": question.id,
        "text": question.text,
        "type": question.type.value,
        "options": list(question.options),
    }
    # Scale bounds only exist on likert-style questions
    for key, value in (
        ("min", question.min),
        ("max", question.max),
        ("minLabel", question.min_label),
        ("maxLabel", question.max_label),
    ):
        if value is not None:
            data[key] = value
    return data


def questionnaire_from_dict(data: dict | None, fallback_id: str | None = None) -> Questionnaire | None:
    if not data:
        return None
    return Questionnaire(
        id=str(data.get("id", fallback_id or "")),
        title=data.get("title", ""),
        icon=data.get("icon") or "FileQuestion",
        questions=[question_from_dict(q) for q in data.get("questions") or []],
        created_at=parse_datetime(data.get("created_at")),
    )


def questionnaire_to_dict(questionnaire: Questionnaire | None) -> dict | None:
    if questionnaire is None:
        return None
    return {
        "id": questionnaire.id,
        "title": questionnaire.title,
        "icon": questionnaire.icon,
        "questions": [question_to_dict(q) for q in questionnaire.questions],
        "created_at": format_datetime(questionnaire.created_at),
    }


def answer_from_dict(data: dict) -> Answer:
    return Answer(
        question_id=str(data.get("question_id", data.get("questionId", ""))),
        value=data.get("value"),
    )


def answer_to_dict(answer: Answer) -> dict:
    return {"question_id": answer.question_id, "value": answer.value}


def assignment_from_dict(data: dict) -> Assignment:
    return Assignment(
        id=str(data["id"]),
        patient_id=str(data["patient_id"]),
        questionnaire_id=str(data["questionnaire_id"]),
        start_date=parse_date(data["start_date"]),
        end_date=parse_date(data["end_date"]),
        frequency_type=FrequencyType(data.get("frequency_type", FrequencyType.DAILY.value)),
        frequency_count=int(data.get("frequency_count", 1)),
        window_start=_hhmm(data.get("window_start", "00:00")),
        window_end=_hhmm(data.get("window_end", "23:59")),
        deadline_hours=int(data.get("deadline_hours", 24)),
        min_hours_between=int(data.get("min_hours_between") or 0),
        status=AssignmentStatus(data.get("status", AssignmentStatus.ACTIVE.value)),
        assignment_type=AssignmentType(
            data.get("assignment_type") or AssignmentType.RECURRING.value
        ),
        next_scheduled_at=parse_datetime(data.get("next_scheduled_at")),
        assigned_at=parse_datetime(data.get("assigned_at")),
        questionnaire=questionnaire_from_dict(
            data.get("questionnaire"), fallback_id=optional_id(data.get("questionnaire_id")),
        ),
    )


def assignment_to_dict(assignment: Assignment) -> dict:
    return {
        "id": assignment.id,
        "patient_id": assignment.patient_id,
        "questionnaire_id": assignment.questionnaire_id,
        "start_date": assignment.start_date.isoformat(),
        "end_date": assignment.end_date.isoformat(),
        "frequency_type": assignment.frequency_type.value,
        "frequency_count": assignment.frequency_count,
        "window_start": assignment.window_start,
        "window_end": assignment.window_end,
        "deadline_hours": assignment.deadline_hours,
        "min_hours_between": assignment.min_hours_between,
        "status": assignment.status.value,
        "assignment_type": assignment.assignment_type.value,
        "next_scheduled_at": format_datetime(assignment.next_scheduled_at),
        "assigned_at": format_datetime(assignment.assigned_at),
    }


def completion_from_dict(data: dict) -> Completion:
    return Completion(
        id=str(data["id"]),
        assignment_id=str(data["assignment_id"]),
        patient_id=str(data["patient_id"]),
        questionnaire_id=str(data["questionnaire_id"]),
        scheduled_at=parse_datetime(data["scheduled_at"]),
        deadline_hours=int(data.get("deadline_hours") or 0),
        status=CompletionStatus(data.get("status", CompletionStatus.PENDING.value)),
        completed_at=parse_datetime(data.get("completed_at")),
        answers=[answer_from_dict(a) for a in data.get("answers") or []],
        is_delayed=bool(data.get("is_delayed", False)),
        read_by_therapist=bool(data.get("read_by_therapist", False)),
        questionnaire=questionnaire_from_dict(
            data.get("questionnaire"), fallback_id=optional_id(data.get("questionnaire_id")),
        ),
    )


def completion_to_dict(completion: Completion) -> dict:
    return {
        "id": completion.id,
        "assignment_id": completion.assignment_id,
        "patient_id": completion.patient_id,
        "questionnaire_id": completion.questionnaire_id,
        "scheduled_at": format_datetime(completion.scheduled_at),
        "deadline_hours": completion.deadline_hours,
        "status": completion.status.value,
        "completed_at": format_datetime(completion.completed_at),
        "answers": [answer_to_dict(a) for a in completion.answers],
        "is_delayed": completion.is_delayed,
        "read_by_therapist": completion.read_by_therapist,
        "questionnaire": questionnaire_to_dict(completion.questionnaire),
    }
