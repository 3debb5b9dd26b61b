"""Tests for checkpointer types and id generation."""

import uuid

import pytest

from dynamo_checkpointer.checkpointers import CheckpointTuple, new_checkpoint_id
from dynamo_checkpointer.checkpointers.base import get_checkpoint_ns, make_config, optional_checkpoint_id, require_thread_id
from dynamo_checkpointer.exceptions import InvalidConfigError


class TestNewCheckpointId:
    def test_is_uuid_v6(self):
        parsed = uuid.UUID(new_checkpoint_id())
        assert parsed.version == 6
        assert parsed.variant == uuid.RFC_4122

    def test_ids_sort_by_creation(self):
        ids = [new_checkpoint_id() for _ in range(200)]
        assert sorted(ids) == ids
        assert len(set(ids)) == len(ids)

    def test_clock_seq_is_encoded(self):
        parsed = uuid.UUID(new_checkpoint_id(clock_seq=5))
        assert parsed.clock_seq == 5


class TestCheckpointTuple:
    def test_defaults(self):
        t = CheckpointTuple(config=make_config("1", "", "cp"), checkpoint={"id": "cp"}, metadata={})
        assert t.parent_config is None
        assert t.pending_writes == []

    def test_to_dict(self):
        t = CheckpointTuple(
            config=make_config("1", "", "cp"),
            checkpoint={"id": "cp"},
            metadata={"step": 1},
            parent_config=make_config("1", "", "parent"),
            pending_writes=[("task", "channel", "value")],
        )
        d = t.to_dict()
        assert d["config"]["configurable"]["checkpoint_id"] == "cp"
        assert d["parent_config"]["configurable"]["checkpoint_id"] == "parent"
        assert d["pending_writes"] == [["task", "channel", "value"]]


class TestConfigHelpers:
    def test_thread_id_required(self):
        with pytest.raises(InvalidConfigError, match="Invalid thread_id"):
            require_thread_id({"configurable": {}})

    def test_thread_id_must_be_str(self):
        with pytest.raises(InvalidConfigError, match="Invalid thread_id"):
            require_thread_id({"configurable": {"thread_id": 1}})

    def test_missing_configurable(self):
        with pytest.raises(InvalidConfigError):
            require_thread_id({})

    def test_checkpoint_id_optional(self):
        assert optional_checkpoint_id({"configurable": {"thread_id": "1"}}) is None

    def test_checkpoint_id_must_be_str(self):
        with pytest.raises(InvalidConfigError, match="Invalid checkpoint_id") as exc_info:
            optional_checkpoint_id({"configurable": {"thread_id": "1", "checkpoint_id": 123}})
        assert exc_info.value.field == "checkpoint_id"
        assert exc_info.value.value == 123

    def test_namespace_defaults_to_empty(self):
        assert get_checkpoint_ns({"configurable": {"thread_id": "1"}}) == ""
        assert get_checkpoint_ns({"configurable": {"thread_id": "1", "checkpoint_ns": None}}) == ""
