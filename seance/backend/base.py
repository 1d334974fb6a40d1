"""Backend contract: the six storage operations every implementation provides."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from types import TracebackType


class SessionBackend(ABC):
    """Persistent mapping of (session id, key) -> bytes plus per-session age.

    Implementations:

    - `FilesystemBackend`: a directory per session, a file per key
    - `RedisBackend`: a hash per session, one shared hash of creation times
    - `MemoryBackend`: plain dicts, for tests and single-process hosts

    Faults are raised as `BackendError`; "not found" is never an error.
    """

    @abstractmethod
    async def list_sessions(self) -> set[str]:
        """Return ids of all existing sessions (empty set if there are none)."""

    @abstractmethod
    async def session_age(self, session_id: str) -> int | None:
        """Return the session's creation timestamp, or None if it does not exist."""

    @abstractmethod
    async def remove_session(self, session_id: str) -> None:
        """Remove every key and the age marker. No-op for an unknown session."""

    @abstractmethod
    async def read_value(self, session_id: str, key: str) -> bytes | None:
        """Return the stored bytes, or None if the session or key is missing."""

    @abstractmethod
    async def write_value(self, session_id: str, key: str, data: bytes) -> None:
        """Store *data*, creating the session and its age marker first if needed.

        The age marker must be visible no later than the first key.
        """

    @abstractmethod
    async def remove_value(self, session_id: str, key: str) -> None:
        """Delete a single key. No-op if absent."""

    async def close(self) -> None:  # noqa: B027
        """Release connections or handles held by the backend."""

    async def __aenter__(self) -> SessionBackend:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class LockedBackend(SessionBackend):
    """Serializes access to one shared backend instance.

    The lock is held for exactly one inner call. Sequences such as
    read-then-write are not atomic as a unit: concurrent writers on the same
    key race, and the last write wins.
    """

    def __init__(self, inner: SessionBackend) -> None:
        self._inner = inner
        self._lock = asyncio.Lock()

    @property
    def inner(self) -> SessionBackend:
        return self._inner

    async def list_sessions(self) -> set[str]:
        async with self._lock:
            return await self._inner.list_sessions()

    async def session_age(self, session_id: str) -> int | None:
        async with self._lock:
            return await self._inner.session_age(session_id)

    async def remove_session(self, session_id: str) -> None:
        async with self._lock:
            await self._inner.remove_session(session_id)

    async def read_value(self, session_id: str, key: str) -> bytes | None:
        async with self._lock:
            return await self._inner.read_value(session_id, key)

    async def write_value(self, session_id: str, key: str, data: bytes) -> None:
        async with self._lock:
            await self._inner.write_value(session_id, key, data)

    async def remove_value(self, session_id: str, key: str) -> None:
        async with self._lock:
            await self._inner.remove_value(session_id, key)

    async def close(self) -> None:
        async with self._lock:
            await self._inner.close()
