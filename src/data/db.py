"""
Supervision Scheduler — SQLite store.

Local implementation of BackendPort for single-host deployments and tests.
Every state change on a completion is a single conditional statement, so
concurrent submissions or sweeps cannot both win:

- a new occurrence is inserted only while the assignment has no open one;
- answers, missed and reschedule updates apply only to open occurrences.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import date, datetime, timezone
from pathlib import Path

from src.core.occurrences import iter_slots, validate_schedule
from src.data.models import (
    OPEN_STATUSES,
    Answer,
    Assignment,
    AssignmentStatus,
    AssignmentType,
    Completion,
    CompletionStatus,
    FrequencyType,
    Question,
    Questionnaire,
)
from src.data.serialization import (
    answer_from_dict,
    answer_to_dict,
    format_datetime,
    parse_date,
    parse_datetime,
    question_from_dict,
    question_to_dict,
    questionnaire_from_dict,
    questionnaire_to_dict,
)

logger = logging.getLogger(__name__)

_OPEN_SQL = "('pending', 'sent')"


class SchedulingDB:
    """SQLite-backed storage for questionnaires, assignments and completions."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS questionnaires (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    title           TEXT    NOT NULL,
                    icon            TEXT    NOT NULL DEFAULT 'FileQuestion',
                    questions_json  TEXT    NOT NULL DEFAULT '[]',
                    created_at      TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS assignments (
                    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                    patient_id         TEXT    NOT NULL,
                    questionnaire_id   TEXT    NOT NULL,
                    start_date         TEXT    NOT NULL,
                    end_date           TEXT    NOT NULL,
                    frequency_type     TEXT    NOT NULL,
                    frequency_count    INTEGER NOT NULL,
                    window_start       TEXT    NOT NULL,
                    window_end         TEXT    NOT NULL,
                    deadline_hours     INTEGER NOT NULL,
                    min_hours_between  INTEGER NOT NULL DEFAULT 0,
                    status             TEXT    NOT NULL DEFAULT 'active',
                    assignment_type    TEXT    NOT NULL DEFAULT 'recurring',
                    next_scheduled_at  TEXT,
                    assigned_at        TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS completions (
                    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                    assignment_id      TEXT    NOT NULL,
                    patient_id         TEXT    NOT NULL,
                    questionnaire_id   TEXT    NOT NULL,
                    scheduled_at       TEXT    NOT NULL,
                    deadline_hours     INTEGER NOT NULL,
                    status             TEXT    NOT NULL DEFAULT 'pending',
                    completed_at       TEXT,
                    answers_json       TEXT    NOT NULL DEFAULT '[]',
                    is_delayed         INTEGER NOT NULL DEFAULT 0,
                    read_by_therapist  INTEGER NOT NULL DEFAULT 0,
                    questionnaire_json TEXT
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_completions_assignment "
                "ON completions (assignment_id, status)"
            )
        logger.debug("Scheduling tables initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_questionnaire(row: sqlite3.Row) -> Questionnaire:
        return Questionnaire(
            id=str(row["id"]),
            title=row["title"],
            icon=row["icon"],
            questions=[question_from_dict(q) for q in json.loads(row["questions_json"])],
            created_at=parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_assignment(row: sqlite3.Row) -> Assignment:
        return Assignment(
            id=str(row["id"]),
            patient_id=row["patient_id"],
            questionnaire_id=row["questionnaire_id"],
            start_date=parse_date(row["start_date"]),
            end_date=parse_date(row["end_date"]),
            frequency_type=FrequencyType(row["frequency_type"]),
            frequency_count=row["frequency_count"],
            window_start=row["window_start"],
            window_end=row["window_end"],
            deadline_hours=row["deadline_hours"],
            min_hours_between=row["min_hours_between"],
            status=AssignmentStatus(row["status"]),
            assignment_type=AssignmentType(row["assignment_type"]),
            next_scheduled_at=parse_datetime(row["next_scheduled_at"]),
            assigned_at=parse_datetime(row["assigned_at"]),
        )

    @staticmethod
    def _row_to_completion(row: sqlite3.Row) -> Completion:
        snapshot = row["questionnaire_json"]
        return Completion(
            id=str(row["id"]),
            assignment_id=row["assignment_id"],
            patient_id=row["patient_id"],
            questionnaire_id=row["questionnaire_id"],
            scheduled_at=parse_datetime(row["scheduled_at"]),
            deadline_hours=row["deadline_hours"],
            status=CompletionStatus(row["status"]),
            completed_at=parse_datetime(row["completed_at"]),
            answers=[answer_from_dict(a) for a in json.loads(row["answers_json"])],
            is_delayed=bool(row["is_delayed"]),
            read_by_therapist=bool(row["read_by_therapist"]),
            questionnaire=questionnaire_from_dict(json.loads(snapshot)) if snapshot else None,
        )

    def _fetch_completion(self, completion_id: str) -> Completion | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM completions WHERE id = ?", (completion_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_completion(row)

    def _fetch_assignment(self, assignment_id: str) -> Assignment | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM assignments WHERE id = ?", (assignment_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_assignment(row)

    # ------------------------------------------------------------------
    # Questionnaires
    # ------------------------------------------------------------------

    async def add_questionnaire(
        self,
        title: str,
        questions: list[Question],
        icon: str = "FileQuestion",
    ) -> Questionnaire:
        created_at = datetime.now(timezone.utc)
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO questionnaires (title, icon, questions_json, created_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    title, icon,
                    json.dumps([question_to_dict(q) for q in questions]),
                    format_datetime(created_at),
                ),
            )
            questionnaire_id = str(cursor.lastrowid)
        logger.info("Questionnaire added: #%s '%s'", questionnaire_id, title)
        return Questionnaire(
            id=questionnaire_id,
            title=title,
            icon=icon,
            questions=list(questions),
            created_at=created_at,
        )

    async def get_questionnaire(self, questionnaire_id: str) -> Questionnaire | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM questionnaires WHERE id = ?", (questionnaire_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_questionnaire(row)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    async def add_assignment(
        self,
        patient_id: str,
        questionnaire_id: str,
        start_date: date,
        end_date: date,
        frequency_type: FrequencyType = FrequencyType.DAILY,
        frequency_count: int = 1,
        window_start: str = "09:00",
        window_end: str = "21:00",
        deadline_hours: int = 2,
        min_hours_between: int = 0,
        assignment_type: AssignmentType = AssignmentType.RECURRING,
        now: datetime | None = None,
    ) -> Assignment:
        """Validate and insert a new active assignment.

        next_scheduled_at starts at now for immediate assignments and at the
        first slot for recurring ones.

        Raises:
            InvalidScheduleError: malformed range, frequency or window.
        """
        now = now or datetime.now(timezone.utc)
        assignment = Assignment(
            id="",
            patient_id=str(patient_id),
            questionnaire_id=str(questionnaire_id),
            start_date=start_date,
            end_date=end_date,
            frequency_type=FrequencyType(frequency_type),
            frequency_count=frequency_count,
            window_start=window_start,
            window_end=window_end,
            deadline_hours=deadline_hours,
            min_hours_between=min_hours_between,
            assignment_type=AssignmentType(assignment_type),
            assigned_at=now,
        )
        validate_schedule(assignment)
        if assignment.assignment_type == AssignmentType.IMMEDIATE:
            assignment.next_scheduled_at = now
        else:
            assignment.next_scheduled_at = next(
                (slot for slot in iter_slots(assignment) if slot >= now), None
            )

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO assignments
                    (patient_id, questionnaire_id, start_date, end_date,
                     frequency_type, frequency_count, window_start, window_end,
                     deadline_hours, min_hours_between, status, assignment_type,
                     next_scheduled_at, assigned_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'active', ?, ?, ?)
                """,
                (
                    assignment.patient_id, assignment.questionnaire_id,
                    start_date.isoformat(), end_date.isoformat(),
                    assignment.frequency_type.value, frequency_count,
                    window_start, window_end, deadline_hours, min_hours_between,
                    assignment.assignment_type.value,
                    format_datetime(assignment.next_scheduled_at),
                    format_datetime(now),
                ),
            )
            assignment.id = str(cursor.lastrowid)

        logger.info(
            "Assignment added: #%s questionnaire %s for patient %s (%s, %dx %s)",
            assignment.id, questionnaire_id, patient_id,
            assignment.assignment_type.value, frequency_count,
            assignment.frequency_type.value,
        )
        return assignment

    async def get_assignment(self, assignment_id: str) -> Assignment | None:
        return self._fetch_assignment(assignment_id)

    async def list_active_assignments(
        self, include_paused: bool = False
    ) -> list[Assignment]:
        statuses = ["active", "paused"] if include_paused else ["active"]
        placeholders = ", ".join("?" for _ in statuses)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM assignments WHERE status IN ({placeholders}) ORDER BY id",
                statuses,
            ).fetchall()
        return [self._row_to_assignment(r) for r in rows]

    async def list_patient_assignments(self, patient_id: str) -> list[Assignment]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM assignments WHERE patient_id = ? ORDER BY id",
                (str(patient_id),),
            ).fetchall()
        return [self._row_to_assignment(r) for r in rows]

    async def set_assignment_status(
        self, assignment_id: str, status: AssignmentStatus
    ) -> Assignment | None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE assignments SET status = ? WHERE id = ?",
                (AssignmentStatus(status).value, assignment_id),
            )
        if cursor.rowcount == 0:
            return None
        return self._fetch_assignment(assignment_id)

    async def set_next_scheduled_at(
        self, assignment_id: str, next_scheduled_at: datetime | None
    ) -> Assignment | None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE assignments SET next_scheduled_at = ? WHERE id = ?",
                (format_datetime(next_scheduled_at), assignment_id),
            )
        if cursor.rowcount == 0:
            return None
        return self._fetch_assignment(assignment_id)

    async def delete_assignment(self, assignment_id: str) -> bool:
        """Delete an assignment together with its occurrence history."""
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM completions WHERE assignment_id = ?", (assignment_id,)
            )
            cursor = conn.execute(
                "DELETE FROM assignments WHERE id = ?", (assignment_id,)
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Assignment #%s deleted", assignment_id)
        return deleted

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------

    async def create_completion(
        self,
        assignment: Assignment,
        scheduled_at: datetime,
        questionnaire: Questionnaire | None,
    ) -> Completion | None:
        """Insert a pending occurrence unless the assignment already has an open one."""
        snapshot = questionnaire_to_dict(questionnaire)
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO completions
                    (assignment_id, patient_id, questionnaire_id, scheduled_at,
                     deadline_hours, status, questionnaire_json)
                SELECT ?, ?, ?, ?, ?, 'pending', ?
                WHERE NOT EXISTS (
                    SELECT 1 FROM completions
                    WHERE assignment_id = ? AND status IN {_OPEN_SQL}
                )
                """,
                (
                    assignment.id, assignment.patient_id, assignment.questionnaire_id,
                    format_datetime(scheduled_at), assignment.deadline_hours,
                    json.dumps(snapshot) if snapshot else None,
                    assignment.id,
                ),
            )
            if cursor.rowcount == 0:
                return None
            completion_id = str(cursor.lastrowid)
        return self._fetch_completion(completion_id)

    async def get_completion(self, completion_id: str) -> Completion | None:
        return self._fetch_completion(completion_id)

    async def list_completions(
        self,
        assignment_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[Completion]:
        conditions: list[str] = []
        params: list = []
        if assignment_id is not None:
            conditions.append("assignment_id = ?")
            params.append(str(assignment_id))
        if patient_id is not None:
            conditions.append("patient_id = ?")
            params.append(str(patient_id))

        query = "SELECT * FROM completions"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY scheduled_at, id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_completion(r) for r in rows]

    async def submit_completion(
        self,
        completion_id: str,
        answers: list[Answer],
        completed_at: datetime,
        is_delayed: bool,
    ) -> Completion | None:
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE completions
                SET status = 'completed', completed_at = ?, answers_json = ?, is_delayed = ?
                WHERE id = ? AND status IN {_OPEN_SQL}
                """,
                (
                    format_datetime(completed_at),
                    json.dumps([answer_to_dict(a) for a in answers]),
                    int(is_delayed),
                    completion_id,
                ),
            )
        if cursor.rowcount == 0:
            return None
        return self._fetch_completion(completion_id)

    async def set_completion_status(
        self,
        completion_id: str,
        status: CompletionStatus,
        expected: Sequence[CompletionStatus] = OPEN_STATUSES,
    ) -> Completion | None:
        expected_values = [CompletionStatus(s).value for s in expected]
        placeholders = ", ".join("?" for _ in expected_values)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE completions SET status = ? WHERE id = ? AND status IN ({placeholders})",
                [CompletionStatus(status).value, completion_id, *expected_values],
            )
        if cursor.rowcount == 0:
            return None
        return self._fetch_completion(completion_id)

    async def mark_completion_read(self, completion_id: str) -> Completion | None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE completions SET read_by_therapist = 1 WHERE id = ?",
                (completion_id,),
            )
        if cursor.rowcount == 0:
            return None
        return self._fetch_completion(completion_id)

    async def reschedule_completion(
        self, completion_id: str, scheduled_at: datetime
    ) -> Completion | None:
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE completions SET scheduled_at = ? WHERE id = ? AND status IN {_OPEN_SQL}",
                (format_datetime(scheduled_at), completion_id),
            )
        if cursor.rowcount == 0:
            return None
        return self._fetch_completion(completion_id)

    async def delete_completion(self, completion_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM completions WHERE id = ?", (completion_id,)
            )
        return cursor.rowcount > 0
