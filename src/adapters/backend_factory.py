"""Backend adapter factory — creates the right adapter based on config."""

from __future__ import annotations

from src.config import settings
from src.core.session import SessionContext
from src.ports.backend_port import BackendPort


def create_backend_adapter(session: SessionContext | None = None) -> BackendPort:
    """Return the backend adapter matching the BACKEND_PROVIDER setting.

    Args:
        session: Shared session context for authenticated providers.
    """
    provider = settings.BACKEND_PROVIDER.lower()

    if provider == "http":
        from src.adapters.http_backend import HttpBackendAdapter

        return HttpBackendAdapter(
            base_url=settings.BACKEND_URL,
            session=session or SessionContext(),
            timeout=settings.BACKEND_TIMEOUT_SECONDS,
        )

    if provider == "sqlite":
        from src.data.db import SchedulingDB

        return SchedulingDB(db_path=settings.DATABASE_PATH)

    raise ValueError(f"Unknown BACKEND_PROVIDER: {provider!r}")
