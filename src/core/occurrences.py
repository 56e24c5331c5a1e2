"""Occurrence generator — pure scheduling logic.

Decides when an assignment's next questionnaire occurrence becomes due.
Each period (one day for daily, seven days for weekly assignments, anchored
at start_date) holds at most frequency_count slots, spread evenly over the
period's window time and kept min_hours_between apart.

No I/O: this module only transforms data. All datetimes are UTC-aware.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from src.core.errors import InvalidScheduleError
from src.data.models import Assignment, AssignmentType, FrequencyType

logger = logging.getLogger(__name__)

_PERIOD_DAYS = {
    FrequencyType.DAILY: 1,
    FrequencyType.WEEKLY: 7,
}


@dataclass
class Evaluation:
    """What the sweep should do for one assignment right now."""

    due_at: datetime | None            # scheduled_at of the occurrence to create
    next_scheduled_at: datetime | None
    exhausted: bool                    # no occurrences left after this one


def _parse_hhmm(value: str) -> int:
    """Convert "HH:MM" to minutes from midnight.

    Raises InvalidScheduleError on malformed input.
    """
    try:
        hour, minute = map(int, value.strip()[:5].split(":"))
    except (AttributeError, ValueError) as exc:
        raise InvalidScheduleError(f"Malformed time of day: {value!r}") from exc
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidScheduleError(f"Time of day out of range: {value!r}")
    return hour * 60 + minute


def _at(day: date, minutes: int) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc) + timedelta(
        minutes=minutes
    )


def _minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def period_days(assignment: Assignment) -> int:
    return _PERIOD_DAYS[FrequencyType(assignment.frequency_type)]


def validate_schedule(assignment: Assignment) -> None:
    """Raise InvalidScheduleError if the assignment cannot be scheduled."""
    if assignment.start_date > assignment.end_date:
        raise InvalidScheduleError(
            f"Assignment {assignment.id}: start_date {assignment.start_date} "
            f"is after end_date {assignment.end_date}"
        )
    if assignment.frequency_count < 1:
        raise InvalidScheduleError(
            f"Assignment {assignment.id}: frequency_count must be >= 1, "
            f"got {assignment.frequency_count}"
        )
    if assignment.deadline_hours <= 0:
        raise InvalidScheduleError(
            f"Assignment {assignment.id}: deadline_hours must be positive"
        )
    if assignment.min_hours_between < 0:
        raise InvalidScheduleError(
            f"Assignment {assignment.id}: min_hours_between cannot be negative"
        )
    start = _parse_hhmm(assignment.window_start)
    end = _parse_hhmm(assignment.window_end)
    # window_end == window_start is a point window: the slot time itself
    if assignment.assignment_type == AssignmentType.RECURRING and start > end:
        raise InvalidScheduleError(
            f"Assignment {assignment.id}: window {assignment.window_start}-"
            f"{assignment.window_end} is inverted"
        )


def is_point_window(assignment: Assignment) -> bool:
    """True if the window has zero width (one-time assignments are saved so)."""
    return _parse_hhmm(assignment.window_start) == _parse_hhmm(assignment.window_end)


def in_window(assignment: Assignment, moment: datetime) -> bool:
    """Check if moment's time of day lies within [window_start, window_end]."""
    minute = _minute_of_day(moment)
    return (
        _parse_hhmm(assignment.window_start)
        <= minute
        <= _parse_hhmm(assignment.window_end)
    )


def _snap_to_window(moment: datetime, start: int, end: int) -> datetime:
    """Move moment forward to the nearest instant inside the daily window."""
    minute = _minute_of_day(moment)
    if minute < start:
        return _at(moment.date(), start)
    if minute > end:
        return _at(moment.date() + timedelta(days=1), start)
    return moment


def period_start(assignment: Assignment, day: date) -> date:
    """First day of the scheduling period containing day."""
    length = period_days(assignment)
    offset = max((day - assignment.start_date).days, 0)
    return assignment.start_date + timedelta(days=(offset // length) * length)


def period_slots(assignment: Assignment, first_day: date) -> list[datetime]:
    """All due times of the period starting on first_day.

    Every period uses the same slot pattern; in the last period slots after
    end_date are dropped. Slots that the minimum spacing pushes past the end
    of the period are dropped too, so a period may hold fewer than
    frequency_count slots but never more. A point window holds at most one
    slot per day.
    """
    if first_day > assignment.end_date:
        return []

    days = period_days(assignment)
    start = _parse_hhmm(assignment.window_start)
    end = _parse_hhmm(assignment.window_end)
    width = end - start
    span = days * width
    gap = timedelta(hours=assignment.min_hours_between)
    period_end = first_day + timedelta(days=days)

    slots: list[datetime] = []
    for i in range(assignment.frequency_count):
        if width:
            day_index, minute = divmod((i * span) // assignment.frequency_count, width)
        else:
            day_index, minute = (i * days) // assignment.frequency_count, 0
        candidate = _at(first_day + timedelta(days=day_index), start + minute)
        if slots and candidate < slots[-1] + gap:
            candidate = _snap_to_window(slots[-1] + gap, start, end)
        if candidate.date() >= period_end or candidate.date() > assignment.end_date:
            break
        if slots and candidate <= slots[-1]:
            continue
        slots.append(candidate)
    return slots


def iter_slots(
    assignment: Assignment, after: datetime | None = None
) -> Iterator[datetime]:
    """Yield due times in order, each later than after by at least the spacing."""
    gap = timedelta(hours=assignment.min_hours_between)
    first = assignment.start_date if after is None else max(
        assignment.start_date, after.date()
    )
    current = period_start(assignment, first)
    floor = after
    while current <= assignment.end_date:
        for slot in period_slots(assignment, current):
            if floor is not None and (slot <= floor or slot < floor + gap):
                continue
            yield slot
            floor = slot
        current += timedelta(days=period_days(assignment))


def evaluate(
    assignment: Assignment,
    now: datetime,
    last_scheduled_at: datetime | None,
) -> Evaluation:
    """Decide whether an occurrence is due for assignment at now.

    Args:
        assignment: The assignment to evaluate (assumed valid and active).
        now: Current UTC time.
        last_scheduled_at: scheduled_at of the newest existing occurrence.

    Returns:
        An Evaluation. When several slots passed unseen only the latest one
        is returned as due; earlier ones are not backfilled. A slot whose
        response deadline already elapsed is skipped, never generated. A due
        slot found outside the window is deferred and reported as
        next_scheduled_at instead; point windows are never deferred.
    """
    if now.date() > assignment.end_date:
        return Evaluation(due_at=None, next_scheduled_at=None, exhausted=True)

    if assignment.assignment_type == AssignmentType.IMMEDIATE:
        if last_scheduled_at is None:
            return Evaluation(due_at=now, next_scheduled_at=None, exhausted=True)
        return Evaluation(due_at=None, next_scheduled_at=None, exhausted=True)

    answer_time = timedelta(hours=assignment.deadline_hours)
    due: datetime | None = None
    upcoming: datetime | None = None
    for slot in iter_slots(assignment, after=last_scheduled_at):
        if slot <= now:
            # Only the latest passed slot counts, and only while answerable
            due = slot if now <= slot + answer_time else None
            continue
        upcoming = slot
        break

    if due is None:
        return Evaluation(
            due_at=None, next_scheduled_at=upcoming, exhausted=upcoming is None,
        )

    if not is_point_window(assignment) and not in_window(assignment, now):
        logger.debug(
            "Assignment %s: slot %s due but outside window, deferring",
            assignment.id, due.isoformat(),
        )
        return Evaluation(due_at=None, next_scheduled_at=due, exhausted=False)

    return Evaluation(
        due_at=due, next_scheduled_at=upcoming, exhausted=upcoming is None,
    )
