"""Filesystem backend: one directory per session, one file per key.

Layout under the configured root::

    <root>/<session_id>/.__created   decimal unix timestamp of the first write
    <root>/<session_id>/<key>        encoded envelope bytes

The root directory must already exist; the backend never creates it.
Blocking calls run in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path

from seance.backend.base import SessionBackend
from seance.clock import now
from seance.errors import BackendError, InvalidNameError, StoragePathConflictError

logger = logging.getLogger(__name__)

RESERVED_PREFIX = ".__"
TIME_MARKER = ".__created"
_STAGING_PREFIX = ".__new-"
_TMP_PREFIX = ".__tmp-"
_FORBIDDEN_CHARS = ("/", "\\", "\x00")


def validate_name(name: str, kind: str) -> str:
    """Reject ids and keys that cannot be used as a single path component."""
    if (
        not name
        or name in {".", ".."}
        or name.startswith(RESERVED_PREFIX)
        or any(char in name for char in _FORBIDDEN_CHARS)
    ):
        msg = f"invalid {kind} {name!r} for filesystem storage"
        raise InvalidNameError(msg)
    return name


class FilesystemBackend(SessionBackend):
    """Stores sessions as directories below *root*."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def __repr__(self) -> str:
        return f"FilesystemBackend(root={str(self._root)!r})"

    # -- SessionBackend --------------------------------------------------

    async def list_sessions(self) -> set[str]:
        return await asyncio.to_thread(self._list_sessions)

    async def session_age(self, session_id: str) -> int | None:
        path = self._session_path(session_id)
        return await asyncio.to_thread(self._session_age, path)

    async def remove_session(self, session_id: str) -> None:
        path = self._session_path(session_id)
        await asyncio.to_thread(self._remove_session, path)

    async def read_value(self, session_id: str, key: str) -> bytes | None:
        path = self._session_path(session_id)
        validate_name(key, "key")
        return await asyncio.to_thread(self._read_value, path, key)

    async def write_value(self, session_id: str, key: str, data: bytes) -> None:
        path = self._session_path(session_id)
        validate_name(key, "key")
        await asyncio.to_thread(self._write_value, path, key, bytes(data))

    async def remove_value(self, session_id: str, key: str) -> None:
        path = self._session_path(session_id)
        validate_name(key, "key")
        await asyncio.to_thread(self._remove_value, path, key)

    # -- sync helpers (worker thread) ------------------------------------

    def _session_path(self, session_id: str) -> Path:
        return self._root / validate_name(session_id, "session id")

    def _root_conflict(self) -> StoragePathConflictError:
        return StoragePathConflictError(f"storage root '{self._root}' is not a directory")

    def _is_session_dir(self, path: Path) -> bool:
        try:
            mode = path.stat().st_mode
        except FileNotFoundError:
            return False
        except NotADirectoryError as exc:
            raise self._root_conflict() from exc
        except OSError as exc:
            msg = f"failed to get session root metadata: {exc}"
            raise BackendError(msg) from exc
        if not stat.S_ISDIR(mode):
            msg = f"session root '{path}' is occupied by a non-directory"
            raise StoragePathConflictError(msg)
        return True

    def _list_sessions(self) -> set[str]:
        try:
            entries = list(self._root.iterdir())
        except FileNotFoundError:
            return set()
        except NotADirectoryError as exc:
            raise self._root_conflict() from exc
        except OSError as exc:
            msg = f"failed to get sessions list: {exc}"
            raise BackendError(msg) from exc
        return {
            entry.name
            for entry in entries
            if not entry.name.startswith(RESERVED_PREFIX) and entry.is_dir()
        }

    def _session_age(self, path: Path) -> int | None:
        if not self._is_session_dir(path):
            return None
        marker = path / TIME_MARKER
        try:
            raw = marker.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"failed to read time marker '{marker}': {exc}"
            raise BackendError(msg) from exc
        if not raw.isdecimal():
            msg = f"failed to parse time marker value {raw!r} in '{marker}'"
            raise BackendError(msg)
        return int(raw)

    def _remove_session(self, path: Path) -> None:
        if not self._is_session_dir(path):
            return
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            msg = f"failed to remove session '{path.name}': {exc}"
            raise BackendError(msg) from exc
        logger.debug("Removed session directory %s", path)

    def _read_value(self, path: Path, key: str) -> bytes | None:
        if not self._is_session_dir(path):
            return None
        try:
            return (path / key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"failed to read a value: {exc}"
            raise BackendError(msg) from exc

    def _write_value(self, path: Path, key: str, data: bytes) -> None:
        if not self._is_session_dir(path):
            self._create_session(path)
        elif not (path / TIME_MARKER).exists():
            self._restore_marker(path)
        try:
            _replace_file(path / key, data)
        except OSError as exc:
            msg = f"failed to write a value: {exc}"
            raise BackendError(msg) from exc

    def _remove_value(self, path: Path, key: str) -> None:
        if not self._is_session_dir(path):
            return
        try:
            (path / key).unlink(missing_ok=True)
        except OSError as exc:
            msg = f"failed to remove a value: {exc}"
            raise BackendError(msg) from exc

    def _restore_marker(self, path: Path) -> None:
        """Give a marker-less session directory a fresh time marker."""
        try:
            _replace_file(path / TIME_MARKER, str(now()).encode("utf-8"))
        except OSError as exc:
            msg = f"failed to create time marker for session '{path.name}': {exc}"
            raise BackendError(msg) from exc
        logger.warning("Session %s had no time marker, starting its age now", path.name)

    def _create_session(self, path: Path) -> None:
        """Publish a new session directory that already contains its time marker.

        The directory is assembled under a hidden staging name and renamed into
        place, so readers never see a session without a marker.
        """
        try:
            staging = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=self._root))
        except FileNotFoundError as exc:
            msg = f"storage root '{self._root}' does not exist"
            raise BackendError(msg) from exc
        except NotADirectoryError as exc:
            raise self._root_conflict() from exc
        except OSError as exc:
            msg = f"failed to create session '{path.name}': {exc}"
            raise BackendError(msg) from exc

        try:
            (staging / TIME_MARKER).write_text(str(now()), encoding="utf-8")
            try:
                staging.rename(path)
            except OSError:
                if not self._is_session_dir(path):
                    raise
                logger.debug("Session %s was created concurrently", path.name)
            else:
                logger.debug("Created session directory %s", path)
        except OSError as exc:
            msg = f"failed to create time marker for session '{path.name}': {exc}"
            raise BackendError(msg) from exc
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)


def _replace_file(target: Path, data: bytes) -> None:
    """Atomically overwrite *target* via a temp file in the same directory."""
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=_TMP_PREFIX)
    os.close(fd)
    tmp = Path(tmp_name)
    try:
        tmp.write_bytes(data)
        tmp.replace(target)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
