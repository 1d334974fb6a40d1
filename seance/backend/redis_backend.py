"""Redis backend: one hash per session plus a shared hash of creation times.

Keys, for namespace ``ns``::

    ns:session:<session_id>  hash: key -> encoded envelope bytes
    ns:sessions              hash: session_id -> decimal unix timestamp

Session hashes live under their own ``session:`` prefix, so no session id
can name the timestamps hash.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from seance.backend.base import SessionBackend
from seance.clock import now
from seance.errors import BackendError

logger = logging.getLogger(__name__)

SESSIONS_SUFFIX = "sessions"
SESSION_PREFIX = "session:"


def _as_text(raw: bytes | str) -> str:
    return raw.decode("utf-8") if isinstance(raw, bytes) else raw


class RedisBackend(SessionBackend):
    """Session storage on a Redis server via ``redis.asyncio``.

    The client must be created with ``decode_responses=False`` so values come
    back as raw bytes.
    """

    def __init__(self, client: aioredis.Redis, namespace: str = "seance") -> None:
        self._redis = client
        self._namespace = namespace
        self._sessions_key = f"{namespace}:{SESSIONS_SUFFIX}"

    @classmethod
    async def from_url(
        cls,
        url: str = "redis://127.0.0.1:6379/0",
        namespace: str = "seance",
        *,
        max_connections: int = 10,
        username: str | None = None,
        password: str | None = None,
    ) -> RedisBackend:
        """Connect to *url* and verify the connection with PING."""
        kwargs: dict[str, object] = {
            "decode_responses": False,
            "max_connections": max_connections,
        }
        if username:
            kwargs["username"] = username
        if password:
            kwargs["password"] = password

        client = aioredis.from_url(url, **kwargs)
        try:
            await client.ping()
        except RedisError as exc:
            await client.aclose()
            msg = f"failed to connect to redis at {url}: {exc}"
            raise BackendError(msg) from exc
        logger.info("Redis backend connected: %s (namespace=%s)", url, namespace)
        return cls(client, namespace)

    @property
    def namespace(self) -> str:
        return self._namespace

    def _session_key(self, session_id: str) -> str:
        return f"{self._namespace}:{SESSION_PREFIX}{session_id}"

    async def list_sessions(self) -> set[str]:
        try:
            ids = await self._redis.hkeys(self._sessions_key)
        except RedisError as exc:
            msg = f"failed to get sessions list: {exc}"
            raise BackendError(msg) from exc
        try:
            return {_as_text(session_id) for session_id in ids}
        except UnicodeDecodeError as exc:
            msg = f"session id contains non-utf8 data: {exc}"
            raise BackendError(msg) from exc

    async def session_age(self, session_id: str) -> int | None:
        try:
            raw = await self._redis.hget(self._sessions_key, session_id)
        except RedisError as exc:
            msg = f"failed to get session age: {exc}"
            raise BackendError(msg) from exc
        if raw is None:
            return None
        try:
            text = _as_text(raw)
        except UnicodeDecodeError as exc:
            msg = f"session age contains non-utf8 data: {exc}"
            raise BackendError(msg) from exc
        if not text.isdecimal():
            msg = f"session age contains non-integer value: {text!r}"
            raise BackendError(msg)
        return int(text)

    async def remove_session(self, session_id: str) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._session_key(session_id))
                pipe.hdel(self._sessions_key, session_id)
                await pipe.execute()
        except RedisError as exc:
            msg = f"failed to remove session: {exc}"
            raise BackendError(msg) from exc

    async def read_value(self, session_id: str, key: str) -> bytes | None:
        try:
            return await self._redis.hget(self._session_key(session_id), key)
        except RedisError as exc:
            msg = f"failed to read value: {exc}"
            raise BackendError(msg) from exc

    async def write_value(self, session_id: str, key: str, data: bytes) -> None:
        # MULTI/EXEC: the timestamp (set only if absent) lands with the value.
        timestamp = str(now())
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hsetnx(self._sessions_key, session_id, timestamp)
                pipe.hset(self._session_key(session_id), key, data)
                await pipe.execute()
        except RedisError as exc:
            msg = f"failed to write value: {exc}"
            raise BackendError(msg) from exc

    async def remove_value(self, session_id: str, key: str) -> None:
        try:
            await self._redis.hdel(self._session_key(session_id), key)
        except RedisError as exc:
            msg = f"failed to remove value: {exc}"
            raise BackendError(msg) from exc

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Redis backend closed")
