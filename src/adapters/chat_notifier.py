"""Chat notification adapter — implements NotificationPort.

Posts a therapist-side chat message to the patient through the platform's
/messages endpoint, authenticated with the shared session.
"""

from __future__ import annotations

import logging

import httpx

from src.core.session import SessionContext
from src.ports.backend_port import BackendError, SessionExpiredError

logger = logging.getLogger(__name__)


class ChatNotifier:
    """Platform chat implementation of NotificationPort."""

    def __init__(
        self,
        base_url: str,
        session: SessionContext,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = timeout
        self._transport = transport

    async def send_message(self, patient_id: str, text: str) -> None:
        payload = {
            "patient_id": int(patient_id) if str(patient_id).isdigit() else patient_id,
            "content": text,
            "is_from_patient": False,
        }
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport,
        ) as client:
            resp = await client.post(
                "/messages", json=payload, headers=self._session.auth_headers(),
            )
        if resp.status_code == 401:
            self._session.clear()
            raise SessionExpiredError("POST /messages: session expired")
        if not resp.is_success:
            raise BackendError(f"send message: HTTP {resp.status_code}")
        logger.debug("Chat message sent to patient %s", patient_id)
