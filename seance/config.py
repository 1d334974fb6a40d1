"""Configuration models and the JSON config loader."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, ValidationError

from seance.errors import ConfigurationError

if TYPE_CHECKING:
    from seance.backend.base import SessionBackend

logger = logging.getLogger(__name__)


class FilesystemConfig(BaseModel):
    """Settings for the filesystem backend. The root must already exist."""

    root: str = "~/.seance/sessions"


class RedisConfig(BaseModel):
    """Settings for the Redis backend."""

    url: str = "redis://127.0.0.1:6379/0"
    namespace: str = "seance"
    max_connections: int = Field(default=10, ge=1)
    username: str | None = None
    password: str | None = None


class CollectorConfig(BaseModel):
    """Settings for the background session collector."""

    enabled: bool = True
    period_seconds: float = Field(default=60.0, gt=0)
    lifetime_seconds: float = Field(default=86400.0, ge=0)


class SeanceConfig(BaseModel):
    """Top-level configuration loaded from a JSON file."""

    log_level: str = "INFO"
    backend: Literal["filesystem", "redis", "memory"] = "filesystem"
    filesystem: FilesystemConfig = Field(default_factory=FilesystemConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)


def deep_merge_config(
    user: dict[str, object],
    defaults: dict[str, object],
) -> tuple[dict[str, object], bool]:
    """Recursively merge *defaults* into *user*, preserving user values.

    Returns ``(merged_dict, changed)`` where *changed* is True when keys were added.
    """
    result: dict[str, object] = dict(user)
    changed = False
    for key, default_val in defaults.items():
        if key not in result:
            result[key] = default_val
            changed = True
        elif isinstance(default_val, dict) and isinstance(result[key], dict):
            sub_merged, sub_changed = deep_merge_config(
                result[key],  # type: ignore[arg-type]
                default_val,
            )
            result[key] = sub_merged
            changed = changed or sub_changed
    return result, changed


def load_config(path: Path | None, *, persist_defaults: bool = False) -> SeanceConfig:
    """Load *path*, filling in defaults for any missing keys.

    A missing file (or ``None``) yields the defaults. Unreadable JSON or
    invalid values raise `ConfigurationError`. With *persist_defaults* the
    merged result is written back so the file lists every available setting.
    """
    if path is None or not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return SeanceConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"cannot read config file {path}: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"config file {path} must contain a JSON object"
        raise ConfigurationError(msg)

    merged, changed = deep_merge_config(data, SeanceConfig().model_dump(mode="json"))
    try:
        config = SeanceConfig.model_validate(merged)
    except ValidationError as exc:
        msg = f"invalid config file {path}: {exc}"
        raise ConfigurationError(msg) from exc
    if changed and persist_defaults:
        path.write_text(json.dumps(merged, indent=2) + "\n", encoding="utf-8")
        logger.info("Config %s: added missing keys from defaults", path)
    return config


async def create_backend(config: SeanceConfig) -> SessionBackend:
    """Build the backend selected by ``config.backend``."""
    from seance.backend import FilesystemBackend, MemoryBackend, RedisBackend

    if config.backend == "redis":
        cfg = config.redis
        return await RedisBackend.from_url(
            cfg.url,
            cfg.namespace,
            max_connections=cfg.max_connections,
            username=cfg.username,
            password=cfg.password,
        )
    if config.backend == "memory":
        return MemoryBackend()
    return FilesystemBackend(Path(config.filesystem.root).expanduser())
