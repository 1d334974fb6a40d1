"""Tests for configuration models and loading."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from seance.backend.fs import FilesystemBackend
from seance.backend.memory import MemoryBackend
from seance.config import (
    CollectorConfig,
    SeanceConfig,
    create_backend,
    deep_merge_config,
    load_config,
)
from seance.errors import ConfigurationError

# -- SeanceConfig defaults --


def test_defaults() -> None:
    cfg = SeanceConfig()
    assert cfg.backend == "filesystem"
    assert cfg.log_level == "INFO"
    assert cfg.filesystem.root == "~/.seance/sessions"
    assert cfg.redis.namespace == "seance"
    assert cfg.collector.enabled is True
    assert cfg.collector.period_seconds == 60.0
    assert cfg.collector.lifetime_seconds == 86400.0


def test_rejects_unknown_backend() -> None:
    with pytest.raises(ValidationError, match="backend"):
        SeanceConfig(backend="sqlite")  # type: ignore[arg-type]


def test_rejects_non_positive_period() -> None:
    with pytest.raises(ValidationError, match="period_seconds"):
        CollectorConfig(period_seconds=0)


# -- deep_merge_config --


def test_deep_merge_adds_new_keys() -> None:
    user: dict[str, object] = {"backend": "redis"}
    defaults: dict[str, object] = {"backend": "filesystem", "log_level": "INFO"}
    merged, changed = deep_merge_config(user, defaults)
    assert merged == {"backend": "redis", "log_level": "INFO"}
    assert changed is True


def test_deep_merge_nested() -> None:
    user: dict[str, object] = {"collector": {"period_seconds": 5}}
    defaults: dict[str, object] = {"collector": {"period_seconds": 60, "enabled": True}}
    merged, changed = deep_merge_config(user, defaults)
    assert merged == {"collector": {"period_seconds": 5, "enabled": True}}
    assert changed is True


def test_deep_merge_no_changes() -> None:
    merged, changed = deep_merge_config({"a": 1}, {"a": 2})
    assert merged == {"a": 1}
    assert changed is False


# -- load_config --


def test_load_missing_file_gives_defaults(tmp_path: Path) -> None:
    assert load_config(tmp_path / "absent.json") == SeanceConfig()
    assert load_config(None) == SeanceConfig()


def test_load_partial_file(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"backend": "memory", "collector": {"lifetime_seconds": 30}}))

    cfg = load_config(path)

    assert cfg.backend == "memory"
    assert cfg.collector.lifetime_seconds == 30
    assert cfg.collector.period_seconds == 60.0
    # Without persist_defaults the file is left alone.
    assert json.loads(path.read_text()) == {
        "backend": "memory",
        "collector": {"lifetime_seconds": 30},
    }


def test_load_persists_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"backend": "memory"}))

    load_config(path, persist_defaults=True)

    data = json.loads(path.read_text())
    assert data["backend"] == "memory"
    assert data["collector"]["period_seconds"] == 60.0
    assert data["redis"]["url"] == "redis://127.0.0.1:6379/0"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"backend": "sqlite"}'])
def test_load_invalid_file(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_config(path)


# -- create_backend --


async def test_create_filesystem_backend(tmp_path: Path) -> None:
    cfg = SeanceConfig(filesystem={"root": str(tmp_path)})  # type: ignore[arg-type]
    backend = await create_backend(cfg)
    assert isinstance(backend, FilesystemBackend)
    assert backend.root == tmp_path


async def test_create_memory_backend() -> None:
    assert isinstance(await create_backend(SeanceConfig(backend="memory")), MemoryBackend)


async def test_create_redis_backend() -> None:
    cfg = SeanceConfig(backend="redis", redis={"url": "redis://cache:6379/2", "namespace": "app"})  # type: ignore[arg-type]
    sentinel = object()
    with patch(
        "seance.backend.redis_backend.RedisBackend.from_url", AsyncMock(return_value=sentinel)
    ) as from_url:
        assert await create_backend(cfg) is sentinel
    from_url.assert_awaited_once_with(
        "redis://cache:6379/2",
        "app",
        max_connections=10,
        username=None,
        password=None,
    )
