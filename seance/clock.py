"""Wall-clock helpers: integer unix timestamps used by expiry and session age."""

from __future__ import annotations

import time

from seance.errors import ClockError


def now() -> int:
    """Return the current unix time in whole seconds.

    Raises `ClockError` if the system clock reports a time before the epoch.
    """
    try:
        current = time.time()
    except OSError as exc:
        msg = f"system clock unavailable: {exc}"
        raise ClockError(msg) from exc
    if current < 0:
        msg = f"system clock precedes the unix epoch: {current}"
        raise ClockError(msg)
    return int(current)
