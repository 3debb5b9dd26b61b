"""Serializers and the payload codec for checkpoint value storage."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from dynamo_checkpointer.exceptions import SerializationError


class Serializer(ABC):
    """Base class for typed value serialization.

    The saver stores the type tag next to the bytes and hands both back on
    load, so a serializer may pick a different encoding per value.
    """

    @abstractmethod
    def dumps_typed(self, value: Any) -> tuple[str, bytes]:
        """Convert value to ``(type_tag, bytes)``."""
        ...

    @abstractmethod
    def loads_typed(self, type_tag: str, data: bytes) -> Any:
        """Convert ``(type_tag, bytes)`` back to a value.

        Raises:
            SerializationError: If ``type_tag`` is not one this serializer wrote.
        """
        ...


class JsonSerializer(Serializer):
    """JSON serializer (default). Safe, human-readable, inspectable.

    Raw ``bytes`` values are stored as-is under the ``"bytes"`` tag.
    By default, raises on non-JSON-serializable types.
    Pass ``lossy=True`` to fall back to ``str()`` for unsupported types.
    """

    def __init__(self, *, lossy: bool = False):
        self._default = str if lossy else None

    def dumps_typed(self, value: Any) -> tuple[str, bytes]:
        if isinstance(value, (bytes, bytearray)):
            return "bytes", bytes(value)
        return "json", json.dumps(value, default=self._default, ensure_ascii=False).encode("utf-8")

    def loads_typed(self, type_tag: str, data: bytes) -> Any:
        if type_tag == "bytes":
            return data
        if type_tag == "json":
            return json.loads(data.decode("utf-8"))
        raise SerializationError(f"Unsupported type: {type_tag!r}", type_tag=type_tag)


class PickleSerializer(Serializer):
    """Pickle serializer for complex Python objects.

    WARNING: Pickle can execute arbitrary code on deserialization.
    Requires explicit ``allow_pickle=True`` to construct.
    """

    def __init__(self, *, allow_pickle: bool = False):
        if not allow_pickle:
            raise ValueError(
                "PickleSerializer requires explicit allow_pickle=True. "
                "Pickle can execute arbitrary code on deserialization. "
                "Only use with trusted data sources."
            )

    def dumps_typed(self, value: Any) -> tuple[str, bytes]:
        import pickle

        return "pickle", pickle.dumps(value)

    def loads_typed(self, type_tag: str, data: bytes) -> Any:
        import pickle

        if type_tag != "pickle":
            raise SerializationError(f"Unsupported type: {type_tag!r}", type_tag=type_tag)
        return pickle.loads(data)  # noqa: S301


class PayloadCodec:
    """Encodes values for storage through a pluggable serializer.

    ``None`` is stored as ``(None, None)`` and never reaches the serializer,
    so it round-trips even with serializers that cannot represent it.
    Any serializer failure surfaces as ``SerializationError``.
    """

    def __init__(self, serializer: Serializer):
        self.serializer = serializer

    def encode(self, value: Any) -> tuple[str | None, bytes | None]:
        if value is None:
            return None, None
        try:
            type_tag, data = self.serializer.dumps_typed(value)
        except SerializationError:
            raise
        except Exception as e:
            raise SerializationError(f"Failed to encode {type(value).__name__}: {e}") from e
        return type_tag, data

    def decode(self, type_tag: str | None, data: bytes | None) -> Any:
        if type_tag is None or data is None:
            return None
        try:
            return self.serializer.loads_typed(type_tag, data)
        except SerializationError:
            raise
        except Exception as e:
            raise SerializationError(f"Failed to decode {type_tag!r} payload: {e}", type_tag=type_tag) from e
