"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from seance.backend.fs import FilesystemBackend
from seance.backend.memory import MemoryBackend
from seance.manager import SessionManager


@pytest.fixture
def sessions_root(tmp_path: Path) -> Path:
    """Pre-created storage root for the filesystem backend."""
    root = tmp_path / "sessions"
    root.mkdir()
    return root


@pytest.fixture
def fs_backend(sessions_root: Path) -> FilesystemBackend:
    return FilesystemBackend(sessions_root)


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture(params=["memory", "filesystem"])
def manager(request: pytest.FixtureRequest, sessions_root: Path) -> SessionManager:
    """Manager over each local backend."""
    if request.param == "memory":
        return SessionManager(MemoryBackend())
    return SessionManager(FilesystemBackend(sessions_root))
