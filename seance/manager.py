"""Session manager: owns the shared backend and hands out session handles."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from seance.backend.base import LockedBackend
from seance.codec import JsonPayloadCodec
from seance.collector import SessionCollector
from seance.session import Session

if TYPE_CHECKING:
    from seance.backend.base import SessionBackend
    from seance.codec import PayloadCodec

logger = logging.getLogger(__name__)


class SessionManager:
    """Entry point for session access.

    Wraps one backend instance in a `LockedBackend`. Every `Session` it hands
    out, every clone of the manager and every collector created through
    `collector()` share that single instance and its lock.
    """

    def __init__(self, backend: SessionBackend, codec: PayloadCodec | None = None) -> None:
        if not isinstance(backend, LockedBackend):
            backend = LockedBackend(backend)
        self._backend = backend
        self._codec: PayloadCodec = codec if codec is not None else JsonPayloadCodec()

    @property
    def backend(self) -> LockedBackend:
        return self._backend

    @property
    def codec(self) -> PayloadCodec:
        return self._codec

    def get_session(self, session_id: str) -> Session:
        """Return a new handle bound to *session_id*."""
        return Session(session_id, self._backend, self._codec)

    def clone(self) -> SessionManager:
        """Return a manager sharing this one's backend and codec."""
        return SessionManager(self._backend, self._codec)

    __copy__ = clone

    def collector(
        self,
        period: float | timedelta,
        lifetime: float | timedelta,
    ) -> SessionCollector:
        """Create a collector sweeping the shared backend."""
        return SessionCollector(self._backend, period=period, lifetime=lifetime)

    async def close(self) -> None:
        await self._backend.close()
        logger.debug("Session manager closed backend %r", self._backend.inner)
