"""In-memory backend for tests and single-process hosts."""

from __future__ import annotations

from dataclasses import dataclass, field

from seance.backend.base import SessionBackend
from seance.clock import now


@dataclass
class _StoredSession:
    created_at: int
    values: dict[str, bytes] = field(default_factory=dict)


class MemoryBackend(SessionBackend):
    """Keeps every session in a dict; contents are lost with the process."""

    def __init__(self) -> None:
        self._sessions: dict[str, _StoredSession] = {}

    async def list_sessions(self) -> set[str]:
        return set(self._sessions)

    async def session_age(self, session_id: str) -> int | None:
        stored = self._sessions.get(session_id)
        return stored.created_at if stored is not None else None

    async def remove_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def read_value(self, session_id: str, key: str) -> bytes | None:
        stored = self._sessions.get(session_id)
        if stored is None:
            return None
        return stored.values.get(key)

    async def write_value(self, session_id: str, key: str, data: bytes) -> None:
        stored = self._sessions.get(session_id)
        if stored is None:
            stored = _StoredSession(created_at=now())
            self._sessions[session_id] = stored
        stored.values[key] = bytes(data)

    async def remove_value(self, session_id: str, key: str) -> None:
        stored = self._sessions.get(session_id)
        if stored is not None:
            stored.values.pop(key, None)
