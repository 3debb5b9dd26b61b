"""Tests for MemoryStore's DynamoDB-like semantics."""

import pytest

from dynamo_checkpointer.checkpointers.store import MAX_BATCH_SIZE, MemoryStore, item_size
from dynamo_checkpointer.exceptions import ItemSizeExceededError, ProviderError

PARTITION = ("thread_id", "t1")


@pytest.fixture
def store():
    return MemoryStore({"T": ("thread_id", "checkpoint_id")})


async def _fill(store, ids, **extra):
    for checkpoint_id in ids:
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": checkpoint_id, **extra})


def _ids(page):
    return [item["checkpoint_id"] for item in page.items]


class TestPointOperations:
    async def test_get_missing(self, store):
        assert await store.get_item("T", {"thread_id": "t1", "checkpoint_id": "a"}) is None

    async def test_put_replaces(self, store):
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "a", "v": 1, "extra": True})
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "a", "v": 2})
        assert await store.get_item("T", {"thread_id": "t1", "checkpoint_id": "a"}) == {
            "thread_id": "t1",
            "checkpoint_id": "a",
            "v": 2,
        }

    async def test_returned_items_are_copies(self, store):
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "a", "data": {"x": 1}})
        item = await store.get_item("T", {"thread_id": "t1", "checkpoint_id": "a"})
        item["data"]["x"] = 99
        again = await store.get_item("T", {"thread_id": "t1", "checkpoint_id": "a"})
        assert again["data"] == {"x": 1}

    async def test_unknown_table(self, store):
        with pytest.raises(ProviderError, match="not found"):
            await store.get_item("Missing", {"thread_id": "t1", "checkpoint_id": "a"})

    async def test_item_too_large(self):
        store = MemoryStore({"T": ("thread_id", "checkpoint_id")}, max_item_size=100)
        with pytest.raises(ItemSizeExceededError) as exc_info:
            await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "a", "data": "x" * 200})
        assert exc_info.value.table == "T"
        assert exc_info.value.limit == 100
        assert await store.get_item("T", {"thread_id": "t1", "checkpoint_id": "a"}) is None


class TestBatchPut:
    async def test_applies_all(self, store):
        items = [{"thread_id": "t1", "checkpoint_id": str(i)} for i in range(MAX_BATCH_SIZE)]
        assert await store.batch_put("T", items) == []
        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id")
        assert len(page.items) == MAX_BATCH_SIZE

    async def test_rejects_oversized_batch(self, store):
        items = [{"thread_id": "t1", "checkpoint_id": str(i)} for i in range(MAX_BATCH_SIZE + 1)]
        with pytest.raises(ProviderError, match="Too many items"):
            await store.batch_put("T", items)


class TestQuery:
    async def test_ascending_by_sort_key(self, store):
        await _fill(store, ["c", "a", "b"])
        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id")
        assert _ids(page) == ["a", "b", "c"]
        assert page.last_key is None

    async def test_descending(self, store):
        await _fill(store, ["c", "a", "b"])
        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id", descending=True)
        assert _ids(page) == ["c", "b", "a"]

    async def test_partition_isolation(self, store):
        await _fill(store, ["a"])
        await store.put_item("T", {"thread_id": "t2", "checkpoint_id": "b"})
        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id")
        assert _ids(page) == ["a"]

    async def test_sort_before_is_exclusive(self, store):
        await _fill(store, ["a", "b", "c", "d"])
        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id", sort_before="c", descending=True)
        assert _ids(page) == ["b", "a"]

    async def test_pagination(self, store):
        await _fill(store, ["a", "b", "c", "d", "e"])
        seen = []
        start_key = None
        pages = 0
        while True:
            page = await store.query(
                "T", partition=PARTITION, sort_key="checkpoint_id", descending=True, limit=2, start_key=start_key
            )
            pages += 1
            seen.extend(_ids(page))
            if page.last_key is None:
                break
            start_key = page.last_key
        assert seen == ["e", "d", "c", "b", "a"]
        assert pages == 3

    async def test_exact_page_has_no_continuation(self, store):
        await _fill(store, ["a", "b"])
        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id", limit=2)
        assert _ids(page) == ["a", "b"]
        assert page.last_key is None

    async def test_filters_applied_after_limit(self, store):
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "a", "ns": "x"})
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "b", "ns": "y"})
        await store.put_item("T", {"thread_id": "t1", "checkpoint_id": "c", "ns": "x"})

        page = await store.query("T", partition=PARTITION, sort_key="checkpoint_id", filters={"ns": "x"}, limit=2)
        assert _ids(page) == ["a"]
        assert page.last_key == {"thread_id": "t1", "checkpoint_id": "b"}

        rest = await store.query(
            "T", partition=PARTITION, sort_key="checkpoint_id", filters={"ns": "x"}, limit=2, start_key=page.last_key
        )
        assert _ids(rest) == ["c"]


def test_item_size_counts_names_and_values():
    assert item_size({"ab": "cd"}) == 4
    assert item_size({"b": b"\x00\x01\x02"}) == 4
    assert item_size({"s": "特"}) == 4
