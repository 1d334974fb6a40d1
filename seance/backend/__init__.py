"""Storage backends: the capability contract and its implementations."""

from seance.backend.base import LockedBackend as LockedBackend
from seance.backend.base import SessionBackend as SessionBackend
from seance.backend.fs import FilesystemBackend as FilesystemBackend
from seance.backend.memory import MemoryBackend as MemoryBackend
from seance.backend.redis_backend import RedisBackend as RedisBackend

__all__ = [
    "FilesystemBackend",
    "LockedBackend",
    "MemoryBackend",
    "RedisBackend",
    "SessionBackend",
]
