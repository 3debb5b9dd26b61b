"""Shared fixtures for saver tests."""

import pytest

from dynamo_checkpointer.checkpointers import DynamoDBSaver, MemoryStore, new_checkpoint_id


@pytest.fixture
def store():
    return MemoryStore.for_tables("Checkpoints", "Writes")


@pytest.fixture
def saver(store):
    return DynamoDBSaver(store, checkpoints_table="Checkpoints", writes_table="Writes")


def make_checkpoint(num: int, checkpoint_id: str | None = None) -> dict:
    """Checkpoint with recognizable per-number contents."""
    return {
        "v": 1,
        "id": checkpoint_id or new_checkpoint_id(num),
        "ts": f"2024-04-{num + 18}T17:19:07.952Z",
        "channel_values": {"someKey1": f"someValue{num}"},
        "channel_versions": {"someKey2": num},
        "versions_seen": {"someKey3": {"someKey4": num}},
        "pending_sends": [],
    }


UPDATE_METADATA = {"source": "update", "step": -1, "writes": None}
