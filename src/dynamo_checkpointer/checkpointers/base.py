"""Checkpoint saver base class and config helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Any

from dynamo_checkpointer.checkpointers.serializers import JsonSerializer, PayloadCodec, Serializer
from dynamo_checkpointer.checkpointers.types import Checkpoint, CheckpointMetadata, CheckpointTuple, RunnableConfig
from dynamo_checkpointer.exceptions import InvalidConfigError


def get_configurable(config: RunnableConfig | None) -> dict[str, Any]:
    """Return ``config["configurable"]`` or an empty dict."""
    if not config:
        return {}
    return config.get("configurable") or {}


def require_thread_id(config: RunnableConfig | None) -> str:
    """Return the config's ``thread_id``, raising if missing or not a string."""
    thread_id = get_configurable(config).get("thread_id")
    if not isinstance(thread_id, str):
        raise InvalidConfigError("thread_id", thread_id)
    return thread_id


def optional_checkpoint_id(config: RunnableConfig | None) -> str | None:
    """Return the config's ``checkpoint_id`` if present, raising if not a string."""
    checkpoint_id = get_configurable(config).get("checkpoint_id")
    if checkpoint_id is not None and not isinstance(checkpoint_id, str):
        raise InvalidConfigError("checkpoint_id", checkpoint_id)
    return checkpoint_id


def get_checkpoint_ns(config: RunnableConfig | None) -> str:
    checkpoint_ns = get_configurable(config).get("checkpoint_ns", "")
    if checkpoint_ns is None:
        return ""
    if not isinstance(checkpoint_ns, str):
        raise InvalidConfigError("checkpoint_ns", checkpoint_ns)
    return checkpoint_ns


def make_config(thread_id: str, checkpoint_ns: str, checkpoint_id: str) -> RunnableConfig:
    """Config addressing one stored checkpoint."""
    return {
        "configurable": {
            "thread_id": thread_id,
            "checkpoint_ns": checkpoint_ns,
            "checkpoint_id": checkpoint_id,
        }
    }


class CheckpointSaver(ABC):
    """Base class for checkpoint persistence.

    The orchestrator calls ``put`` after each step, ``put_writes`` as tasks
    produce values, and ``get_tuple``/``list`` to resume or inspect a thread.
    Implementations never mutate a stored checkpoint: writing the same
    identity again replaces it.
    """

    def __init__(self, serializer: Serializer | None = None):
        self.serializer = serializer or JsonSerializer()
        self.codec = PayloadCodec(self.serializer)

    # === Write Operations ===

    @abstractmethod
    async def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        *,
        parent_checkpoint_id: str | None = None,
    ) -> RunnableConfig:
        """Store a checkpoint and return the config addressing it.

        The config's current ``checkpoint_id`` (or ``parent_checkpoint_id``
        when given) becomes the parent of the new checkpoint.
        """
        ...

    @abstractmethod
    async def put_writes(self, config: RunnableConfig, writes: Sequence[tuple[str, Any]], task_id: str) -> None:
        """Store ``(channel, value)`` writes produced by a task for a checkpoint."""
        ...

    # === Read Operations ===

    @abstractmethod
    async def get_tuple(self, config: RunnableConfig) -> CheckpointTuple | None:
        """Fetch one checkpoint (latest when the config has no ``checkpoint_id``).

        Returns None if not found.
        """
        ...

    @abstractmethod
    def list(
        self,
        config: RunnableConfig,
        *,
        filter: dict[str, Any] | None = None,
        before: RunnableConfig | str | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        """Iterate a thread's checkpoints, newest first."""
        ...

    async def get(self, config: RunnableConfig) -> Checkpoint | None:
        """Fetch just the checkpoint. Default implementation calls get_tuple."""
        checkpoint_tuple = await self.get_tuple(config)
        return checkpoint_tuple.checkpoint if checkpoint_tuple else None

    def get_next_version(self, current: int | None) -> int:
        """Next channel version: 1 for a new channel, else ``current + 1``."""
        return 1 if current is None else current + 1

    # === Lifecycle ===

    async def initialize(self) -> None:  # noqa: B027
        """Prepare the saver (open clients, etc.)."""

    async def close(self) -> None:  # noqa: B027
        """Clean up resources (close clients, etc.)."""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
