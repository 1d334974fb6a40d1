"""Payload codecs: convert caller values to and from the envelope's ``value`` tree."""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from seance.errors import DecodeError, EncodeError


class PayloadCodec(Protocol):
    """Swappable serializer for session values."""

    def dump(self, value: Any) -> Any:
        """Return a JSON-compatible representation of *value*."""
        ...

    def load(self, payload: Any, as_type: Any = None) -> Any:
        """Rebuild a value from *payload*, optionally validated as *as_type*."""
        ...


class JsonPayloadCodec:
    """Default codec: plain JSON values, pydantic models, dataclasses, datetimes.

    ``load`` without a type returns the raw JSON tree; with a type it runs
    pydantic validation, so ``load(data, MyModel)`` rebuilds the model.
    """

    def __init__(self) -> None:
        self._adapters: dict[Any, TypeAdapter[Any]] = {}

    def dump(self, value: Any) -> Any:
        try:
            return to_jsonable_python(value)
        except PydanticSerializationError as exc:
            msg = f"failed to encode value of type {type(value).__name__}: {exc}"
            raise EncodeError(msg) from exc

    def load(self, payload: Any, as_type: Any = None) -> Any:
        if as_type is None:
            return payload
        adapter = self._adapters.get(as_type)
        if adapter is None:
            adapter = TypeAdapter(as_type)
            self._adapters[as_type] = adapter
        try:
            return adapter.validate_python(payload)
        except ValidationError as exc:
            msg = f"failed to parse value as {as_type!r}: {exc}"
            raise DecodeError(msg) from exc
