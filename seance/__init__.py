"""seance: async session key-value store with per-key TTL and session garbage collection."""

from seance.backend import (
    FilesystemBackend,
    LockedBackend,
    MemoryBackend,
    RedisBackend,
    SessionBackend,
)
from seance.codec import JsonPayloadCodec, PayloadCodec
from seance.collector import SessionCollector, SessionCollectorHandle
from seance.errors import (
    BackendError,
    ClockError,
    CodecError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    InvalidNameError,
    SeanceError,
    StoragePathConflictError,
)
from seance.manager import SessionManager
from seance.session import Session
from seance.value import Envelope

__version__ = "0.1.0"

__all__ = [
    "BackendError",
    "ClockError",
    "CodecError",
    "ConfigurationError",
    "DecodeError",
    "EncodeError",
    "Envelope",
    "FilesystemBackend",
    "InvalidNameError",
    "JsonPayloadCodec",
    "LockedBackend",
    "MemoryBackend",
    "PayloadCodec",
    "RedisBackend",
    "SeanceError",
    "Session",
    "SessionBackend",
    "SessionCollector",
    "SessionCollectorHandle",
    "SessionManager",
    "StoragePathConflictError",
    "__version__",
]
