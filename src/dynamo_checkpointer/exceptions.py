"""Exceptions for the checkpoint persistence layer."""

from __future__ import annotations


class CheckpointerError(Exception):
    """Base class for all checkpointer errors."""


class InvalidConfigError(CheckpointerError):
    """Caller config is missing a required field or has the wrong type.

    Raised before any store call is made.

    Attributes:
        field: Name of the offending ``configurable`` field
        value: The value that was provided (None when missing)
        message: Human-readable error message
    """

    def __init__(self, field: str, value: object = None, message: str | None = None) -> None:
        self.field = field
        self.value = value
        self.message = message or self._default_message()
        super().__init__(self.message)

    def _default_message(self) -> str:
        if self.value is None:
            return f"Invalid {self.field}: missing from config['configurable']"
        return f"Invalid {self.field}: expected str, got {type(self.value).__name__} ({self.value!r})"


class SerializationError(CheckpointerError):
    """A payload could not be encoded or decoded.

    Attributes:
        type_tag: Serializer type tag involved, if known
        message: Human-readable error message
    """

    def __init__(self, message: str, *, type_tag: str | None = None) -> None:
        self.type_tag = type_tag
        self.message = message
        super().__init__(message)


class ItemSizeExceededError(CheckpointerError):
    """An encoded record exceeds the store's per-item size limit.

    Attributes:
        table: Table the write targeted
        size: Encoded size in bytes, when the store reports it
        limit: The store's limit in bytes, when known
    """

    def __init__(
        self,
        table: str,
        *,
        size: int | None = None,
        limit: int | None = None,
        message: str | None = None,
    ) -> None:
        self.table = table
        self.size = size
        self.limit = limit
        self.message = message or self._default_message()
        super().__init__(self.message)

    def _default_message(self) -> str:
        msg = f"Item size has exceeded the maximum allowed size (table '{self.table}'"
        if self.size is not None and self.limit is not None:
            msg += f", {self.size} > {self.limit} bytes"
        return msg + ")"


class ProviderError(CheckpointerError):
    """The underlying store failed: network, throttling or exhausted retries.

    Attributes:
        operation: Store operation that failed (e.g. "put_item")
        code: Provider error code, if any (e.g. "ProvisionedThroughputExceededException")
    """

    def __init__(self, message: str, *, operation: str | None = None, code: str | None = None) -> None:
        self.operation = operation
        self.code = code
        self.message = message
        super().__init__(message)
