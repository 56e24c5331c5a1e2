"""Tests for src.config — Settings validation."""

import pytest
from pydantic import ValidationError

from src.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.BACKEND_PROVIDER == "http"
        assert settings.SWEEP_INTERVAL_SECONDS == 300
        assert settings.NOTIFY_PATIENTS is False

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("1", True), ("Yes", True), ("false", False), ("", False),
    ])
    def test_notify_flag_parsing(self, raw, expected):
        assert Settings(NOTIFY_PATIENTS=raw).NOTIFY_PATIENTS is expected

    def test_interval_from_string(self):
        assert Settings(SWEEP_INTERVAL_SECONDS="60").SWEEP_INTERVAL_SECONDS == 60

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            Settings(SWEEP_INTERVAL_SECONDS="0")

    def test_provider_trimmed(self):
        assert Settings(BACKEND_PROVIDER=" sqlite ").BACKEND_PROVIDER == "sqlite"
