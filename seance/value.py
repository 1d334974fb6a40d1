"""Value envelope: a stored payload paired with an optional absolute expiry.

Wire format (compact JSON)::

    {"expires_at": <unix seconds | null>, "value": <payload>}

A missing ``expires_at`` field decodes as "never expires".
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from seance.errors import DecodeError, EncodeError


class Envelope(BaseModel):
    """A payload plus the unix timestamp after which it reads as absent."""

    model_config = ConfigDict(frozen=True)

    expires_at: int | None = Field(default=None, ge=0)
    value: Any = None

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def with_lifetime(self, seconds: int, now: int) -> Envelope:
        """Same payload, expiring *seconds* after *now*."""
        return self.model_copy(update={"expires_at": now + seconds})


def carry_forward(previous: Envelope | None, payload: Any, now: int) -> Envelope:
    """Build the envelope for an overwrite of an existing key.

    A live TTL on the previous value is inherited. An expired one is not:
    the new value then has no TTL at all.
    """
    if (
        previous is not None
        and not previous.is_expired(now)
        and previous.expires_at is not None
    ):
        return Envelope(expires_at=previous.expires_at, value=payload)
    return Envelope(value=payload)


def encode_envelope(envelope: Envelope) -> bytes:
    try:
        return envelope.model_dump_json().encode("utf-8")
    except ValueError as exc:
        msg = f"failed to encode value: {exc}"
        raise EncodeError(msg) from exc


def decode_envelope(data: bytes) -> Envelope:
    """Parse stored bytes; anything that is not a JSON envelope is a `DecodeError`."""
    try:
        envelope = Envelope.model_validate_json(data)
    except ValidationError as exc:
        msg = f"failed to decode value: {exc.error_count()} validation error(s): {exc}"
        raise DecodeError(msg) from exc
    if "value" not in envelope.model_fields_set:
        msg = "failed to decode value: envelope has no 'value' field"
        raise DecodeError(msg)
    return envelope
