"""Tests for src.core.session — session context and id normalisation."""

import pytest

from src.core.session import SessionContext, optional_id


class TestOptionalId:
    @pytest.mark.parametrize("value", [None, "", "  ", "undefined", "null", "None"])
    def test_missing_values(self, value):
        assert optional_id(value) is None

    def test_numbers_become_strings(self):
        assert optional_id(42) == "42"

    def test_strings_are_trimmed(self):
        assert optional_id(" 17 ") == "17"


class TestSessionContext:
    def test_starts_anonymous(self):
        session = SessionContext()
        assert session.is_authenticated is False
        assert session.auth_headers() == {}

    def test_start_sets_identity(self):
        session = SessionContext()
        session.start("abc", user_id=3, role="psychologist", psychologist_id="null")
        assert session.is_authenticated is True
        assert session.user_id == "3"
        assert session.role == "psychologist"
        assert session.psychologist_id is None
        assert session.auth_headers() == {"Authorization": "Bearer abc"}

    def test_clear(self):
        session = SessionContext()
        session.start("abc", user_id=3, role="patient", psychologist_id=9)
        session.clear()
        assert session == SessionContext()
        assert session.is_authenticated is False

    def test_clear_is_idempotent(self):
        session = SessionContext()
        session.clear()
        assert session.token is None
