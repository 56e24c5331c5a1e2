"""Session context shared by the backend adapters.

Started explicitly on login, cleared on logout or when the backend answers
401. Adapters hold a reference to it instead of reading ambient state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_MISSING_ID_SENTINELS = {"", "undefined", "null", "none"}


def optional_id(value: object) -> str | None:
    """Normalise a wire id: None, numbers and sentinel strings are handled."""
    if value is None:
        return None
    text = str(value).strip()
    if text.lower() in _MISSING_ID_SENTINELS:
        return None
    return text


@dataclass
class SessionContext:
    """Authenticated identity used for backend requests."""

    token: str | None = None
    user_id: str | None = None
    role: str | None = None
    psychologist_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def start(
        self,
        token: str,
        user_id: object = None,
        role: str | None = None,
        psychologist_id: object = None,
    ) -> None:
        self.token = token
        self.user_id = optional_id(user_id)
        self.role = role
        self.psychologist_id = optional_id(psychologist_id)
        logger.info("Session started (user=%s, role=%s)", self.user_id, self.role)

    def clear(self) -> None:
        if self.token is not None:
            logger.info("Session cleared (user=%s)", self.user_id)
        self.token = None
        self.user_id = None
        self.role = None
        self.psychologist_id = None

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
