"""Composite key encoding for checkpoint and write records.

Checkpoints are partitioned by thread and sorted by checkpoint id:

    {"thread_id": "t1", "checkpoint_id": "1ef..."}

Writes are partitioned by (thread, checkpoint, namespace) and sorted by
(task, idx), each joined with ``KEY_SEPARATOR``:

    {"thread_id_checkpoint_id_checkpoint_ns": "t1:::1ef...:::",
     "task_id_idx": "task-a:::0"}
"""

from __future__ import annotations

from typing import Any, NamedTuple

from dynamo_checkpointer.exceptions import InvalidConfigError

KEY_SEPARATOR = ":::"

CHECKPOINT_PARTITION_KEY = "thread_id"
CHECKPOINT_SORT_KEY = "checkpoint_id"
WRITE_PARTITION_KEY = "thread_id_checkpoint_id_checkpoint_ns"
WRITE_SORT_KEY = "task_id_idx"


class WritePartition(NamedTuple):
    thread_id: str
    checkpoint_id: str
    checkpoint_ns: str


class WriteSlot(NamedTuple):
    task_id: str
    idx: int


def checkpoint_id_sort_key(checkpoint_id: str) -> str:
    """Ordering key for checkpoint ids.

    Ids compare by their string value. This holds for time-ordered ids
    (UUIDv6 or ISO timestamps) as long as the generator is monotonic, which
    is the caller's precondition: ids minted on hosts with skewed clocks can
    sort out of creation order and history will follow id order, not wall
    time.
    """
    return checkpoint_id


def _check_component(name: str, value: str, *, trailing: bool = False) -> str:
    # A trailing ":" before the separator would shift the split point on decode
    if KEY_SEPARATOR in value or (trailing and value.endswith(":")):
        raise InvalidConfigError(
            name,
            value,
            message=f"Invalid {name}: {value!r} collides with the reserved key separator {KEY_SEPARATOR!r}",
        )
    return value


def checkpoint_key(thread_id: str, checkpoint_id: str) -> dict[str, Any]:
    """Primary key of a checkpoint record."""
    return {CHECKPOINT_PARTITION_KEY: thread_id, CHECKPOINT_SORT_KEY: checkpoint_id}


def check_checkpoint_identity(thread_id: str, checkpoint_id: str, checkpoint_ns: str) -> None:
    """Raise ``InvalidConfigError`` if the identity cannot be encoded reversibly."""
    _check_component("thread_id", thread_id, trailing=True)
    _check_component("checkpoint_id", checkpoint_id, trailing=True)
    _check_component("checkpoint_ns", checkpoint_ns)


def join_write_partition_key(thread_id: str, checkpoint_id: str, checkpoint_ns: str) -> str:
    """Write partition key for lookups. No reversibility check."""
    return KEY_SEPARATOR.join((thread_id, checkpoint_id, checkpoint_ns))


def write_partition_key(thread_id: str, checkpoint_id: str, checkpoint_ns: str) -> str:
    """Partition key shared by all writes staged against one checkpoint."""
    check_checkpoint_identity(thread_id, checkpoint_id, checkpoint_ns)
    return join_write_partition_key(thread_id, checkpoint_id, checkpoint_ns)


def write_sort_key(task_id: str, idx: int) -> str:
    return f"{_check_component('task_id', task_id)}{KEY_SEPARATOR}{idx}"


def write_key(thread_id: str, checkpoint_id: str, checkpoint_ns: str, task_id: str, idx: int) -> dict[str, Any]:
    """Primary key of a single pending-write record."""
    return {
        WRITE_PARTITION_KEY: write_partition_key(thread_id, checkpoint_id, checkpoint_ns),
        WRITE_SORT_KEY: write_sort_key(task_id, idx),
    }


def parse_write_partition_key(value: str) -> WritePartition:
    """Split a write partition key back into its fields."""
    parts = value.split(KEY_SEPARATOR)
    if len(parts) != 3:
        raise ValueError(f"Malformed write partition key: {value!r}")
    return WritePartition(*parts)


def parse_write_sort_key(value: str) -> WriteSlot:
    """Split a write sort key back into ``(task_id, idx)``."""
    task_id, sep, idx = value.rpartition(KEY_SEPARATOR)
    if not sep or KEY_SEPARATOR in task_id:
        raise ValueError(f"Malformed write sort key: {value!r}")
    return WriteSlot(task_id, int(idx))
