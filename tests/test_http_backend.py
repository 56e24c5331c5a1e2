"""Tests for src.adapters.http_backend — platform REST adapter.

Requests are served by httpx.MockTransport; no network access.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.adapters.http_backend import HttpBackendAdapter
from src.core.errors import NotFoundError
from src.core.session import SessionContext
from src.data.models import (
    Answer,
    AssignmentStatus,
    CompletionStatus,
    Questionnaire,
)
from src.ports.backend_port import BackendError, SessionExpiredError


def _utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def _assignment_json(**overrides):
    record = {
        "id": 12,
        "patient_id": 7,
        "questionnaire_id": 3,
        "start_date": "2026-03-02",
        "end_date": "2026-03-30",
        "frequency_type": "daily",
        "frequency_count": 2,
        "window_start": "09:00",
        "window_end": "21:00",
        "deadline_hours": 2,
        "status": "active",
    }
    record.update(overrides)
    return record


def _completion_json(**overrides):
    record = {
        "id": 40,
        "assignment_id": 12,
        "patient_id": 7,
        "questionnaire_id": 3,
        "scheduled_at": "2026-03-02T09:00:00Z",
        "deadline_hours": 2,
        "status": "pending",
    }
    record.update(overrides)
    return record


class Recorder:
    """MockTransport handler that records requests and replies from a table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"detail": "not found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def _adapter(routes, token="tok-1"):
    recorder = Recorder(routes)
    session = SessionContext()
    if token:
        session.start(token, user_id=1, role="psychologist")
    adapter = HttpBackendAdapter(
        "http://backend.test/", session, transport=httpx.MockTransport(recorder),
    )
    return adapter, recorder, session


class TestAuth:
    @pytest.mark.asyncio
    async def test_login_starts_session(self):
        adapter, recorder, session = _adapter(
            {("POST", "/login"): (200, {
                "access_token": "fresh", "id": 5, "role": "psychologist",
                "psychologist_id": "undefined",
            })},
            token=None,
        )
        await adapter.login("doc@example.com", "secret")

        assert session.token == "fresh"
        assert session.user_id == "5"
        assert session.psychologist_id is None
        assert recorder.last_json == {"email": "doc@example.com", "password": "secret"}
        assert "authorization" not in recorder.requests[-1].headers

    @pytest.mark.asyncio
    async def test_login_without_token_fails(self):
        adapter, _, session = _adapter({("POST", "/login"): (200, {})}, token=None)
        with pytest.raises(BackendError):
            await adapter.login("doc@example.com", "secret")
        assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self):
        adapter, recorder, _ = _adapter({("GET", "/assignments"): (200, [])})
        await adapter.list_active_assignments()
        assert recorder.requests[-1].headers["authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_401_clears_session(self):
        adapter, _, session = _adapter({("GET", "/assignments"): (401, {"detail": "expired"})})
        with pytest.raises(SessionExpiredError):
            await adapter.list_active_assignments()
        assert session.is_authenticated is False

    @pytest.mark.asyncio
    async def test_logout_clears_even_on_failure(self):
        adapter, _, session = _adapter({("POST", "/logout"): (500, {})})
        await adapter.logout()
        assert session.is_authenticated is False


class TestAssignments:
    @pytest.mark.asyncio
    async def test_list_active_filters_statuses(self):
        adapter, _, _ = _adapter({("GET", "/assignments"): (200, [
            _assignment_json(id=1, status="active"),
            _assignment_json(id=2, status="paused"),
            _assignment_json(id=3, status="completed"),
        ])})

        active = await adapter.list_active_assignments()
        assert [a.id for a in active] == ["1"]
        with_paused = await adapter.list_active_assignments(include_paused=True)
        assert [a.id for a in with_paused] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_get_assignment_not_found(self):
        adapter, _, _ = _adapter({})
        assert await adapter.get_assignment("99") is None

    @pytest.mark.asyncio
    async def test_set_status_patches(self):
        adapter, recorder, _ = _adapter({
            ("PATCH", "/assignments/12"): (200, _assignment_json(status="paused")),
        })
        updated = await adapter.set_assignment_status("12", AssignmentStatus.PAUSED)
        assert updated.status == AssignmentStatus.PAUSED
        assert recorder.last_json == {"status": "paused"}

    @pytest.mark.asyncio
    async def test_set_status_unknown_raises(self):
        adapter, _, _ = _adapter({})
        with pytest.raises(NotFoundError):
            await adapter.set_assignment_status("99", AssignmentStatus.PAUSED)

    @pytest.mark.asyncio
    async def test_set_next_scheduled_at_clears(self):
        adapter, recorder, _ = _adapter({
            ("PATCH", "/assignments/12"): (200, _assignment_json()),
        })
        await adapter.set_next_scheduled_at("12", None)
        assert recorder.last_json == {"next_scheduled_at": None}

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        adapter, _, _ = _adapter({("GET", "/assignments"): (500, {"detail": "boom"})})
        with pytest.raises(BackendError, match="HTTP 500"):
            await adapter.list_active_assignments()


class TestCompletions:
    @pytest.mark.asyncio
    async def test_create_completion_payload(self):
        adapter, recorder, _ = _adapter({
            ("GET", "/assignments/12"): (200, _assignment_json()),
            ("POST", "/assignments/12/completions"): (201, _completion_json()),
        })
        assignment = await adapter.get_assignment("12")
        questionnaire = Questionnaire(id="3", title="Daily mood")

        completion = await adapter.create_completion(
            assignment, _utc(2026, 3, 2, 9), questionnaire,
        )

        assert completion.id == "40"
        body = recorder.last_json
        assert body["scheduled_at"] == "2026-03-02T09:00:00+00:00"
        assert body["status"] == "pending"
        assert body["deadline_hours"] == 2
        assert body["questionnaire"]["title"] == "Daily mood"

    @pytest.mark.asyncio
    async def test_create_conflict_returns_none(self):
        adapter, _, _ = _adapter({
            ("GET", "/assignments/12"): (200, _assignment_json()),
            ("POST", "/assignments/12/completions"): (409, {"detail": "open occurrence"}),
        })
        assignment = await adapter.get_assignment("12")
        assert await adapter.create_completion(assignment, _utc(2026, 3, 2, 9), None) is None

    @pytest.mark.asyncio
    async def test_list_by_patient(self):
        adapter, _, _ = _adapter({
            ("GET", "/assignments/completions/7"): (200, [_completion_json()]),
        })
        completions = await adapter.list_completions(patient_id="7")
        assert [c.id for c in completions] == ["40"]

    @pytest.mark.asyncio
    async def test_list_requires_filter(self):
        adapter, _, _ = _adapter({})
        with pytest.raises(ValueError):
            await adapter.list_completions()

    @pytest.mark.asyncio
    async def test_submit(self):
        adapter, recorder, _ = _adapter({
            ("POST", "/assignments/completions/40/submit"): (200, _completion_json(
                status="completed", completed_at="2026-03-02T10:00:00Z",
                answers=[{"question_id": "q1", "value": 2}],
            )),
        })
        completion = await adapter.submit_completion(
            "40", [Answer(question_id="q1", value=2)],
            completed_at=_utc(2026, 3, 2, 10), is_delayed=False,
        )
        assert completion.status == CompletionStatus.COMPLETED
        assert recorder.last_json == {
            "answers": [{"question_id": "q1", "value": 2}],
            "completed_at": "2026-03-02T10:00:00+00:00",
            "is_delayed": False,
        }

    @pytest.mark.asyncio
    async def test_submit_conflict_returns_none(self):
        adapter, _, _ = _adapter({
            ("POST", "/assignments/completions/40/submit"): (409, {"detail": "closed"}),
        })
        assert await adapter.submit_completion(
            "40", [], completed_at=_utc(2026, 3, 2, 10), is_delayed=False,
        ) is None

    @pytest.mark.asyncio
    async def test_set_status_sends_expected(self):
        adapter, recorder, _ = _adapter({
            ("PATCH", "/assignments/completions/40"): (200, _completion_json(status="missed")),
        })
        completion = await adapter.set_completion_status("40", CompletionStatus.MISSED)
        assert completion.status == CompletionStatus.MISSED
        assert recorder.last_json == {
            "status": "missed", "expected_status": ["pending", "sent"],
        }

    @pytest.mark.asyncio
    async def test_mark_read_missing(self):
        adapter, _, _ = _adapter({})
        assert await adapter.mark_completion_read("40") is None

    @pytest.mark.asyncio
    async def test_get_questionnaire(self):
        adapter, _, _ = _adapter({
            ("GET", "/questionnaires/3"): (200, {"title": "Daily mood", "questions": [
                {"id": "q1", "text": "Mood?", "type": "likert", "min": 1, "max": 5},
            ]}),
        })
        questionnaire = await adapter.get_questionnaire("3")
        assert questionnaire.id == "3"
        assert questionnaire.questions[0].max == 5
        assert await adapter.get_questionnaire("4") is None


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_connection_error_becomes_backend_error(self):
        """Low-level httpx failures surface as BackendError."""
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client.request = AsyncMock(side_effect=httpx.ConnectError("refused"))

        session = SessionContext(token="tok-1")
        adapter = HttpBackendAdapter("http://backend.test", session)
        with patch("src.adapters.http_backend.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(BackendError, match="refused"):
                await adapter.get_assignment("12")
        assert session.is_authenticated is True

    @pytest.mark.asyncio
    async def test_delete_assignment(self):
        mock_resp = MagicMock(status_code=204, is_success=True)
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client.request = AsyncMock(return_value=mock_resp)

        adapter = HttpBackendAdapter("http://backend.test", SessionContext(token="tok-1"))
        with patch("src.adapters.http_backend.httpx.AsyncClient", return_value=mock_client):
            assert await adapter.delete_assignment("12") is True
        method, path = mock_client.request.await_args.args
        assert (method, path) == ("DELETE", "/assignments/12")
