"""Session handle: per-key get/set/expire/remove against the shared backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from seance.clock import now
from seance.value import Envelope, carry_forward, decode_envelope, encode_envelope

if TYPE_CHECKING:
    from seance.backend.base import SessionBackend
    from seance.codec import PayloadCodec

logger = logging.getLogger(__name__)


class Session:
    """Handle for one session id.

    Holds no state besides the id: every call goes to the backend. Values
    past their ``expires_at`` read as absent but stay stored until removed
    or until the collector drops the whole session.

    ``set`` and ``expire`` read then write with the backend lock released in
    between. Two concurrent writers on the same key race; the last write
    wins, and the TTL it carries forward depends on the interleaving.
    """

    def __init__(self, session_id: str, backend: SessionBackend, codec: PayloadCodec) -> None:
        self._id = session_id
        self._backend = backend
        self._codec = codec

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"Session(id={self._id!r})"

    async def _read(self, key: str) -> Envelope | None:
        data = await self._backend.read_value(self._id, key)
        if data is None:
            return None
        return decode_envelope(data)

    async def _write(self, key: str, envelope: Envelope) -> None:
        await self._backend.write_value(self._id, key, encode_envelope(envelope))

    async def get(self, key: str, as_type: Any = None) -> Any:
        """Return the value for *key*, or None if missing or expired.

        With *as_type* the stored payload is validated into that type
        (e.g. a pydantic model); otherwise the raw JSON value is returned.
        """
        envelope = await self._read(key)
        if envelope is None:
            return None
        if envelope.is_expired(now()):
            logger.debug("Key %r in session %s expired at %s", key, self._id, envelope.expires_at)
            return None
        return self._codec.load(envelope.value, as_type)

    async def set(self, key: str, value: Any) -> None:
        """Store *value*, keeping the previous value's TTL if it is still live."""
        payload = self._codec.dump(value)
        previous = await self._read(key)
        await self._write(key, carry_forward(previous, payload, now()))

    async def expire(self, key: str, seconds: int) -> None:
        """Make *key* expire *seconds* from now. No-op if the key is missing."""
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0:
            msg = f"expire seconds must be a non-negative integer, got {seconds!r}"
            raise ValueError(msg)
        envelope = await self._read(key)
        if envelope is None:
            return
        await self._write(key, envelope.with_lifetime(seconds, now()))

    async def remove(self, key: str) -> None:
        """Delete *key*. No-op if it does not exist."""
        await self._backend.remove_value(self._id, key)
