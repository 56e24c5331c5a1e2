"""Tests for the backend adapter factory."""

import pytest
from unittest.mock import patch

from src.adapters.backend_factory import create_backend_adapter
from src.core.session import SessionContext


class TestCreateBackendAdapter:
    @patch("src.adapters.backend_factory.settings")
    def test_returns_http_adapter(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "http"
        mock_settings.BACKEND_URL = "http://backend.test"
        mock_settings.BACKEND_TIMEOUT_SECONDS = 5.0
        adapter = create_backend_adapter()
        from src.adapters.http_backend import HttpBackendAdapter
        assert isinstance(adapter, HttpBackendAdapter)
        assert adapter._timeout == 5.0

    @patch("src.adapters.backend_factory.settings")
    def test_http_adapter_shares_session(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "http"
        mock_settings.BACKEND_URL = "http://backend.test"
        mock_settings.BACKEND_TIMEOUT_SECONDS = 5.0
        session = SessionContext(token="abc")
        adapter = create_backend_adapter(session=session)
        assert adapter._session is session

    @patch("src.adapters.backend_factory.settings")
    def test_returns_sqlite_store(self, mock_settings, tmp_db_path):
        mock_settings.BACKEND_PROVIDER = "sqlite"
        mock_settings.DATABASE_PATH = tmp_db_path
        adapter = create_backend_adapter()
        from src.data.db import SchedulingDB
        assert isinstance(adapter, SchedulingDB)

    @patch("src.adapters.backend_factory.settings")
    def test_case_insensitive(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "HTTP"
        mock_settings.BACKEND_URL = "http://backend.test"
        mock_settings.BACKEND_TIMEOUT_SECONDS = 5.0
        from src.adapters.http_backend import HttpBackendAdapter
        assert isinstance(create_backend_adapter(), HttpBackendAdapter)

    @patch("src.adapters.backend_factory.settings")
    def test_unknown_provider_raises(self, mock_settings):
        mock_settings.BACKEND_PROVIDER = "mongo"
        with pytest.raises(ValueError, match="Unknown BACKEND_PROVIDER"):
            create_backend_adapter()
