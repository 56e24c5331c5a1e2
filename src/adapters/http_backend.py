"""REST backend adapter — implements BackendPort over the platform HTTP API.

Requests carry the session's Bearer token. Status mapping:
404 → None for lookups, NotFoundError for writes; 409 → None (the
conditional write lost); 401 → session cleared and SessionExpiredError;
anything else non-2xx → BackendError.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx

from src.core.errors import NotFoundError
from src.core.session import SessionContext
from src.data.models import (
    OPEN_STATUSES,
    Answer,
    Assignment,
    AssignmentStatus,
    Completion,
    CompletionStatus,
    Questionnaire,
)
from src.data.serialization import (
    answer_to_dict,
    assignment_from_dict,
    completion_from_dict,
    format_datetime,
    questionnaire_from_dict,
    questionnaire_to_dict,
)
from src.ports.backend_port import BackendError, SessionExpiredError

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 10


class HttpBackendAdapter:
    """Platform REST API implementation of BackendPort."""

    def __init__(
        self,
        base_url: str,
        session: SessionContext,
        timeout: float = _TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if authenticated:
            headers.update(self._session.auth_headers())
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport,
            ) as client:
                resp = await client.request(
                    method, path, json=json, params=params, headers=headers,
                )
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 401:
            self._session.clear()
            raise SessionExpiredError(f"{method} {path}: session expired")
        return resp

    @staticmethod
    def _check(resp: httpx.Response, what: str) -> None:
        if resp.is_success:
            return
        raise BackendError(f"{what}: HTTP {resp.status_code} {resp.text[:200]}")

    async def _get_or_none(self, path: str, what: str) -> Any:
        resp = await self._request("GET", path)
        if resp.status_code == 404:
            return None
        self._check(resp, what)
        return resp.json()

    async def _write(
        self,
        method: str,
        path: str,
        what: str,
        kind: str,
        object_id: str,
        json: Any = None,
    ) -> Any:
        """Send a conditional write; None when the backend reports a conflict."""
        resp = await self._request(method, path, json=json)
        if resp.status_code == 404:
            raise NotFoundError(kind, object_id)
        if resp.status_code == 409:
            logger.info("%s rejected by backend: state changed", what)
            return None
        self._check(resp, what)
        return resp.json()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> SessionContext:
        resp = await self._request(
            "POST", "/login",
            json={"email": email, "password": password},
            authenticated=False,
        )
        self._check(resp, "login")
        data = resp.json()
        token = data.get("access_token")
        if not token:
            raise BackendError("login: response carried no access_token")
        self._session.start(
            token,
            user_id=data.get("id"),
            role=data.get("role"),
            psychologist_id=data.get("psychologist_id"),
        )
        return self._session

    async def logout(self) -> None:
        try:
            await self._request("POST", "/logout")
        except BackendError as exc:
            logger.warning("Logout request failed: %s", exc)
        finally:
            self._session.clear()

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    async def list_active_assignments(
        self, include_paused: bool = False
    ) -> list[Assignment]:
        resp = await self._request("GET", "/assignments")
        self._check(resp, "list assignments")
        wanted = {AssignmentStatus.ACTIVE}
        if include_paused:
            wanted.add(AssignmentStatus.PAUSED)
        assignments = [assignment_from_dict(a) for a in resp.json()]
        return [a for a in assignments if a.status in wanted]

    async def list_patient_assignments(self, patient_id: str) -> list[Assignment]:
        resp = await self._request("GET", f"/assignments/patient-admin/{patient_id}")
        self._check(resp, "list patient assignments")
        return [assignment_from_dict(a) for a in resp.json()]

    async def get_assignment(self, assignment_id: str) -> Assignment | None:
        data = await self._get_or_none(f"/assignments/{assignment_id}", "get assignment")
        return assignment_from_dict(data) if data is not None else None

    async def set_assignment_status(
        self, assignment_id: str, status: AssignmentStatus
    ) -> Assignment | None:
        data = await self._write(
            "PATCH", f"/assignments/{assignment_id}", "update assignment status",
            "Assignment", assignment_id,
            json={"status": AssignmentStatus(status).value},
        )
        return assignment_from_dict(data) if data is not None else None

    async def set_next_scheduled_at(
        self, assignment_id: str, next_scheduled_at: datetime | None
    ) -> Assignment | None:
        data = await self._write(
            "PATCH", f"/assignments/{assignment_id}", "update next_scheduled_at",
            "Assignment", assignment_id,
            json={"next_scheduled_at": format_datetime(next_scheduled_at)},
        )
        return assignment_from_dict(data) if data is not None else None

    async def delete_assignment(self, assignment_id: str) -> bool:
        resp = await self._request("DELETE", f"/assignments/{assignment_id}")
        if resp.status_code == 404:
            return False
        self._check(resp, "delete assignment")
        return True

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------

    async def create_completion(
        self,
        assignment: Assignment,
        scheduled_at: datetime,
        questionnaire: Questionnaire | None,
    ) -> Completion | None:
        data = await self._write(
            "POST", f"/assignments/{assignment.id}/completions", "create completion",
            "Assignment", assignment.id,
            json={
                "scheduled_at": format_datetime(scheduled_at),
                "status": CompletionStatus.PENDING.value,
                "deadline_hours": assignment.deadline_hours,
                "questionnaire": questionnaire_to_dict(questionnaire),
            },
        )
        return completion_from_dict(data) if data is not None else None

    async def get_completion(self, completion_id: str) -> Completion | None:
        data = await self._get_or_none(
            f"/assignments/completions/by-id/{completion_id}", "get completion",
        )
        return completion_from_dict(data) if data is not None else None

    async def list_completions(
        self,
        assignment_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[Completion]:
        if assignment_id is not None:
            path = f"/assignments/{assignment_id}/completions"
        elif patient_id is not None:
            path = f"/assignments/completions/{patient_id}"
        else:
            raise ValueError("list_completions needs assignment_id or patient_id")

        resp = await self._request("GET", path)
        self._check(resp, "list completions")
        completions = [completion_from_dict(c) for c in resp.json()]
        if assignment_id is not None and patient_id is not None:
            completions = [c for c in completions if c.patient_id == str(patient_id)]
        return completions

    async def submit_completion(
        self,
        completion_id: str,
        answers: list[Answer],
        completed_at: datetime,
        is_delayed: bool,
    ) -> Completion | None:
        data = await self._write(
            "POST", f"/assignments/completions/{completion_id}/submit",
            "submit completion", "Completion", completion_id,
            json={
                "answers": [answer_to_dict(a) for a in answers],
                "completed_at": format_datetime(completed_at),
                "is_delayed": is_delayed,
            },
        )
        return completion_from_dict(data) if data is not None else None

    async def set_completion_status(
        self,
        completion_id: str,
        status: CompletionStatus,
        expected: Sequence[CompletionStatus] = OPEN_STATUSES,
    ) -> Completion | None:
        data = await self._write(
            "PATCH", f"/assignments/completions/{completion_id}",
            "update completion status", "Completion", completion_id,
            json={
                "status": CompletionStatus(status).value,
                "expected_status": [CompletionStatus(s).value for s in expected],
            },
        )
        return completion_from_dict(data) if data is not None else None

    async def mark_completion_read(self, completion_id: str) -> Completion | None:
        resp = await self._request(
            "PATCH", f"/assignments/completions/{completion_id}/read",
        )
        if resp.status_code == 404:
            return None
        self._check(resp, "mark completion read")
        return completion_from_dict(resp.json())

    async def reschedule_completion(
        self, completion_id: str, scheduled_at: datetime
    ) -> Completion | None:
        data = await self._write(
            "PATCH", f"/assignments/completions/{completion_id}",
            "reschedule completion", "Completion", completion_id,
            json={"scheduled_at": format_datetime(scheduled_at)},
        )
        return completion_from_dict(data) if data is not None else None

    async def delete_completion(self, completion_id: str) -> bool:
        resp = await self._request("DELETE", f"/assignments/completions/{completion_id}")
        if resp.status_code == 404:
            return False
        self._check(resp, "delete completion")
        return True

    # ------------------------------------------------------------------
    # Questionnaires
    # ------------------------------------------------------------------

    async def get_questionnaire(self, questionnaire_id: str) -> Questionnaire | None:
        data = await self._get_or_none(
            f"/questionnaires/{questionnaire_id}", "get questionnaire",
        )
        return questionnaire_from_dict(data, fallback_id=questionnaire_id)
