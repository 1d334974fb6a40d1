"""Project-level exception hierarchy."""


class SeanceError(Exception):
    """Base for all seance exceptions."""


class BackendError(SeanceError):
    """Storage backend operation failed (I/O or transport)."""


class CodecError(SeanceError):
    """Stored value could not be encoded or decoded."""


class EncodeError(CodecError):
    """Value could not be serialized."""


class DecodeError(CodecError):
    """Stored bytes are malformed or incompatible with the requested type."""


class ClockError(SeanceError):
    """Wall-clock time is unavailable or precedes the unix epoch."""


class ConfigurationError(SeanceError):
    """Configuration is invalid or inconsistent with the environment."""


class StoragePathConflictError(ConfigurationError):
    """A storage location collides with an existing non-directory path."""


class InvalidNameError(SeanceError, ValueError):
    """Session id or key cannot be mapped onto the backend namespace."""
