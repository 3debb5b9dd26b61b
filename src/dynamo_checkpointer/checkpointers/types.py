"""Checkpoint types shared by the saver, the store layer and the CLI."""

from __future__ import annotations

import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, TypedDict

# {"configurable": {"thread_id": ..., "checkpoint_ns": ..., "checkpoint_id": ...}}
RunnableConfig = dict[str, Any]

# (task_id, channel, value) as returned to the orchestrator
PendingWrite = tuple[str, str, Any]


class Checkpoint(TypedDict, total=False):
    """Snapshot of execution state at one step.

    Only ``id`` is required by the saver. Everything else is opaque and
    round-trips through the serializer as a single payload.
    """

    v: int
    id: str
    ts: str
    channel_values: dict[str, Any]
    channel_versions: dict[str, Any]
    versions_seen: dict[str, dict[str, Any]]
    pending_sends: list[Any]


class CheckpointMetadata(TypedDict, total=False):
    """Metadata stored alongside a checkpoint.

    Attributes:
        source: What produced the checkpoint ("input", "loop", "update", "fork").
        step: Step number (-1 for the input checkpoint).
        writes: Summary of the writes that produced this checkpoint.
        parents: Namespace -> parent checkpoint id.
    """

    source: str
    step: int
    writes: dict[str, Any] | None
    parents: dict[str, str]


@dataclass(frozen=True)
class CheckpointTuple:
    """A checkpoint with everything needed to resume from it.

    Attributes:
        config: Config addressing this checkpoint (thread, namespace, id).
        checkpoint: Decoded checkpoint.
        metadata: Decoded metadata.
        parent_config: Config addressing the parent checkpoint, None for a root.
        pending_writes: Writes staged against this checkpoint, grouped by task
            in arrival order with ``idx`` ascending inside each group.
    """

    config: RunnableConfig
    checkpoint: Checkpoint
    metadata: CheckpointMetadata | None
    parent_config: RunnableConfig | None = None
    pending_writes: list[PendingWrite] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for JSON output."""
        return {
            "config": self.config,
            "checkpoint": self.checkpoint,
            "metadata": self.metadata,
            "parent_config": self.parent_config,
            "pending_writes": [list(w) for w in self.pending_writes],
        }


# 100ns intervals between the Gregorian epoch (1582-10-15) and the Unix epoch
_GREGORIAN_OFFSET = 0x01B21DD213814000

_id_lock = threading.Lock()
_last_timestamp = 0


def new_checkpoint_id(clock_seq: int | None = None) -> str:
    """Generate a time-ordered checkpoint id (UUID version 6 layout).

    The timestamp occupies the most significant bits, so the canonical string
    form sorts lexically by creation time. Within one process the timestamp
    is forced to be strictly increasing; across processes ordering depends on
    the hosts' clocks.

    Args:
        clock_seq: Optional 14-bit clock sequence. Random when omitted.
    """
    global _last_timestamp

    with _id_lock:
        timestamp = time.time_ns() // 100 + _GREGORIAN_OFFSET
        if timestamp <= _last_timestamp:
            timestamp = _last_timestamp + 1
        _last_timestamp = timestamp

    if clock_seq is None:
        clock_seq = random.getrandbits(14)
    node = random.getrandbits(48)

    value = ((timestamp >> 12) & 0xFFFF_FFFF_FFFF) << 80
    value |= (0x6000 | (timestamp & 0x0FFF)) << 64
    value |= (0x8000 | (clock_seq & 0x3FFF)) << 48
    value |= node
    return str(uuid.UUID(int=value))
