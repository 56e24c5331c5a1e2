"""Per-assignment locks shared by the sweep and the submission path."""

from __future__ import annotations

import asyncio


class AssignmentLocks:
    """Lazily created asyncio.Lock per assignment id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, assignment_id: str) -> asyncio.Lock:
        lock = self._locks.get(assignment_id)
        if lock is None:
            lock = self._locks[assignment_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)
