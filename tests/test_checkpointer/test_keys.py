"""Tests for composite key encoding."""

import pytest

from dynamo_checkpointer.checkpointers import keys
from dynamo_checkpointer.exceptions import InvalidConfigError


class TestCheckpointKey:
    def test_partition_by_thread_sorted_by_id(self):
        assert keys.checkpoint_key("t1", "cp-1") == {"thread_id": "t1", "checkpoint_id": "cp-1"}

    def test_sort_key_follows_string_order(self):
        ids = ["1ef0-b", "1ef0-a", "1ef1-0"]
        assert sorted(ids, key=keys.checkpoint_id_sort_key) == ["1ef0-a", "1ef0-b", "1ef1-0"]


class TestWriteKeys:
    def test_partition_key_layout(self):
        assert keys.write_partition_key("1", "test-checkpoint", "") == "1:::test-checkpoint:::"

    def test_sort_key_layout(self):
        assert keys.write_sort_key("foo", 3) == "foo:::3"

    def test_write_key_attributes(self):
        key = keys.write_key("1", "cp", "sub", "task", 0)
        assert key == {
            "thread_id_checkpoint_id_checkpoint_ns": "1:::cp:::sub",
            "task_id_idx": "task:::0",
        }

    @pytest.mark.parametrize(
        ("thread_id", "checkpoint_id", "checkpoint_ns"),
        [
            ("1", "cp", ""),
            ("thread-特殊字符", "checkpoint-特殊字符", "ns|子图"),
            ("a:b", "c::d", "e:"),
        ],
    )
    def test_partition_roundtrip(self, thread_id, checkpoint_id, checkpoint_ns):
        encoded = keys.write_partition_key(thread_id, checkpoint_id, checkpoint_ns)
        assert keys.parse_write_partition_key(encoded) == (thread_id, checkpoint_id, checkpoint_ns)

    def test_sort_roundtrip(self):
        encoded = keys.write_sort_key("tâche-1", 12)
        slot = keys.parse_write_sort_key(encoded)
        assert slot.task_id == "tâche-1"
        assert slot.idx == 12

    def test_negative_idx_roundtrip(self):
        assert keys.parse_write_sort_key(keys.write_sort_key("t", -1)).idx == -1

    def test_separator_in_component_rejected(self):
        with pytest.raises(InvalidConfigError, match="reserved key separator"):
            keys.write_partition_key("bad:::thread", "cp", "")

    def test_separator_in_task_id_rejected(self):
        with pytest.raises(InvalidConfigError, match="task_id"):
            keys.write_sort_key("a:::b", 0)

    def test_malformed_partition_key(self):
        with pytest.raises(ValueError, match="Malformed"):
            keys.parse_write_partition_key("only:::two")

    def test_malformed_sort_key(self):
        with pytest.raises(ValueError, match="Malformed"):
            keys.parse_write_sort_key("no-separator")

    def test_trailing_colon_before_separator_rejected(self):
        # "a:" + ":::" + "b" would decode as ("a", ":b")
        with pytest.raises(InvalidConfigError, match="thread_id"):
            keys.write_partition_key("a:", "b", "")

    def test_lookup_join_accepts_any_id(self):
        assert keys.join_write_partition_key("session:", "cp", "") == "session::::cp:::"

    def test_identity_check(self):
        keys.check_checkpoint_identity("1", "cp", "")
        with pytest.raises(InvalidConfigError, match="checkpoint_ns"):
            keys.check_checkpoint_identity("1", "cp", "ns:::x")
