"""Tests for the Redis backend against an in-process fake client."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
import time_machine
from redis.exceptions import ConnectionError as RedisConnectionError

from seance.backend.redis_backend import RedisBackend
from seance.errors import BackendError


class _FakePipeline:
    def __init__(self, client: _FakeRedis) -> None:
        self._client = client
        self._queued: list[tuple[str, tuple[Any, ...]]] = []

    async def __aenter__(self) -> _FakePipeline:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self._queued.clear()

    def __getattr__(self, name: str) -> Any:
        def queue(*args: Any) -> _FakePipeline:
            self._queued.append((name, args))
            return self

        return queue

    async def execute(self) -> list[Any]:
        self._client.transactions.append([name for name, _ in self._queued])
        return [await getattr(self._client, name)(*args) for name, args in self._queued]


class _FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` (bytes mode) for the backend."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, bytes]] = {}
        self.transactions: list[list[str]] = []
        self.closed = False

    @staticmethod
    def _raw(value: Any) -> bytes:
        return value if isinstance(value, bytes) else str(value).encode()

    async def hkeys(self, name: str) -> list[bytes]:
        return [field.encode() for field in self.hashes.get(name, {})]

    async def hget(self, name: str, field: str) -> bytes | None:
        return self.hashes.get(name, {}).get(field)

    async def hset(self, name: str, field: str, value: Any) -> int:
        self.hashes.setdefault(name, {})[field] = self._raw(value)
        return 1

    async def hsetnx(self, name: str, field: str, value: Any) -> int:
        bucket = self.hashes.setdefault(name, {})
        if field in bucket:
            return 0
        bucket[field] = self._raw(value)
        return 1

    async def hdel(self, name: str, *fields: str) -> int:
        bucket = self.hashes.get(name, {})
        removed = sum(1 for field in fields if bucket.pop(field, None) is not None)
        if name in self.hashes and not bucket:
            del self.hashes[name]
        return removed

    async def delete(self, *names: str) -> int:
        return sum(1 for name in names if self.hashes.pop(name, None) is not None)

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        assert transaction
        return _FakePipeline(self)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> _FakeRedis:
    return _FakeRedis()


@pytest.fixture
def backend(fake_redis: _FakeRedis) -> RedisBackend:
    return RedisBackend(fake_redis, namespace="test")  # type: ignore[arg-type]


@time_machine.travel("2025-06-15 12:00:00+00:00", tick=False)
async def test_write_records_timestamp_and_value(
    backend: RedisBackend, fake_redis: _FakeRedis
) -> None:
    await backend.write_value("sid", "key", b"data")

    assert fake_redis.hashes["test:sessions"] == {"sid": b"1749988800"}
    assert fake_redis.hashes["test:session:sid"] == {"key": b"data"}
    # Marker and value go out in one MULTI/EXEC, marker first.
    assert fake_redis.transactions == [["hsetnx", "hset"]]


async def test_timestamp_not_overwritten(backend: RedisBackend) -> None:
    with time_machine.travel("2025-06-15 12:00:00+00:00", tick=False):
        await backend.write_value("sid", "a", b"1")
    with time_machine.travel("2025-06-16 12:00:00+00:00", tick=False):
        await backend.write_value("sid", "b", b"2")
    assert await backend.session_age("sid") == 1749988800


async def test_list_and_read(backend: RedisBackend) -> None:
    assert await backend.list_sessions() == set()
    await backend.write_value("one", "k", b"1")
    await backend.write_value("two", "k", b"2")
    assert await backend.list_sessions() == {"one", "two"}
    assert await backend.read_value("one", "k") == b"1"
    assert await backend.read_value("one", "missing") is None
    assert await backend.read_value("missing", "k") is None


async def test_remove_session_drops_hash_and_timestamp(
    backend: RedisBackend, fake_redis: _FakeRedis
) -> None:
    await backend.write_value("sid", "a", b"1")
    await backend.remove_session("sid")

    assert await backend.list_sessions() == set()
    assert await backend.session_age("sid") is None
    assert await backend.read_value("sid", "a") is None
    assert fake_redis.transactions[-1] == ["delete", "hdel"]


async def test_session_ids_cannot_reach_timestamps_hash(
    backend: RedisBackend, fake_redis: _FakeRedis
) -> None:
    await backend.write_value("alice", "k", b"v")
    for session_id in ("sessions", "__seance_sessions", "session:alice"):
        await backend.write_value(session_id, "k", b"x")

    assert await backend.list_sessions() == {
        "alice",
        "sessions",
        "__seance_sessions",
        "session:alice",
    }
    assert set(fake_redis.hashes["test:sessions"]) == await backend.list_sessions()

    await backend.remove_session("sessions")
    await backend.remove_session("session:alice")

    assert await backend.list_sessions() == {"alice", "__seance_sessions"}
    assert await backend.session_age("alice") is not None
    assert await backend.read_value("alice", "k") == b"v"


async def test_removals_are_idempotent(backend: RedisBackend) -> None:
    await backend.remove_session("missing")
    await backend.remove_value("missing", "key")


async def test_remove_value(backend: RedisBackend) -> None:
    await backend.write_value("sid", "a", b"1")
    await backend.write_value("sid", "b", b"2")
    await backend.remove_value("sid", "a")
    assert await backend.read_value("sid", "a") is None
    assert await backend.read_value("sid", "b") == b"2"


async def test_non_integer_age_is_backend_error(
    backend: RedisBackend, fake_redis: _FakeRedis
) -> None:
    fake_redis.hashes["test:sessions"] = {"sid": b"soon"}
    with pytest.raises(BackendError, match="non-integer"):
        await backend.session_age("sid")


async def test_redis_error_is_backend_error(backend: RedisBackend) -> None:
    with (
        patch.object(_FakeRedis, "hget", AsyncMock(side_effect=RedisConnectionError("gone"))),
        pytest.raises(BackendError, match="failed to read value") as exc_info,
    ):
        await backend.read_value("sid", "key")
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)


async def test_close(backend: RedisBackend, fake_redis: _FakeRedis) -> None:
    async with backend:
        pass
    assert fake_redis.closed is True


async def test_from_url_pings(fake_redis: _FakeRedis) -> None:
    fake_redis.ping = AsyncMock(return_value=True)  # type: ignore[attr-defined]
    with patch(
        "seance.backend.redis_backend.aioredis.from_url", return_value=fake_redis
    ) as from_url:
        backend = await RedisBackend.from_url("redis://example:6379/1", "ns", password="pw")

    assert backend.namespace == "ns"
    _, kwargs = from_url.call_args
    assert kwargs["decode_responses"] is False
    assert kwargs["password"] == "pw"
    assert "username" not in kwargs


async def test_from_url_connection_failure(fake_redis: _FakeRedis) -> None:
    fake_redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))  # type: ignore[attr-defined]
    with (
        patch("seance.backend.redis_backend.aioredis.from_url", return_value=fake_redis),
        pytest.raises(BackendError, match="failed to connect"),
    ):
        await RedisBackend.from_url("redis://example:6379/1")
    assert fake_redis.closed is True
