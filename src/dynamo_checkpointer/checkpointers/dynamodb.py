"""DynamoDB-backed checkpoint saver."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

from dynamo_checkpointer.checkpointers import keys
from dynamo_checkpointer.checkpointers.base import (
    CheckpointSaver,
    get_checkpoint_ns,
    get_configurable,
    make_config,
    optional_checkpoint_id,
    require_thread_id,
)
from dynamo_checkpointer.checkpointers.serializers import Serializer
from dynamo_checkpointer.checkpointers.store import MAX_BATCH_SIZE, DynamoDBStore, Item, StoreClient
from dynamo_checkpointer.checkpointers.types import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointTuple,
    PendingWrite,
    RunnableConfig,
)
from dynamo_checkpointer.config import SaverSettings
from dynamo_checkpointer.exceptions import InvalidConfigError, ProviderError

logger = logging.getLogger("dynamo_checkpointer.checkpointers")

TTL_ATTRIBUTE = "ttl"


class DynamoDBSaver(CheckpointSaver):
    """Checkpoint persistence on two DynamoDB tables.

    Checkpoints table: partition ``thread_id``, sort ``checkpoint_id``.
    Writes table: partition ``thread_id_checkpoint_id_checkpoint_ns``, sort
    ``task_id_idx``. See ``keys`` for the encoding.

    Args:
        store: Store client. Defaults to a ``DynamoDBStore`` built from
            ``region_name``/``endpoint_url``.
        checkpoints_table: Checkpoints table name.
        writes_table: Writes table name.
        ttl_seconds: If set, every record expires this long after it is
            written (the table's TTL attribute must be ``ttl``).
        serializer: Value serializer (default: JSON).
        max_batch_size: Items per batch write request.
        max_batch_retries: Retries for unprocessed batch items.
        page_size: Items per history query page.

    Example::

        async with DynamoDBSaver(checkpoints_table="checkpoints", writes_table="writes") as saver:
            config = await saver.put({"configurable": {"thread_id": "1"}}, checkpoint, metadata)
            latest = await saver.get_tuple({"configurable": {"thread_id": "1"}})
    """

    def __init__(
        self,
        store: StoreClient | None = None,
        *,
        checkpoints_table: str = "checkpoints",
        writes_table: str = "writes",
        ttl_seconds: int | None = None,
        serializer: Serializer | None = None,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_batch_retries: int = 5,
        page_size: int = 100,
    ):
        super().__init__(serializer=serializer)
        self.settings = SaverSettings(
            checkpoints_table=checkpoints_table,
            writes_table=writes_table,
            ttl_seconds=ttl_seconds,
            region_name=region_name,
            endpoint_url=endpoint_url,
            max_batch_size=max_batch_size,
            max_batch_retries=max_batch_retries,
            page_size=page_size,
        )
        self.store = store if store is not None else DynamoDBStore(region_name=region_name, endpoint_url=endpoint_url)

    @classmethod
    def from_settings(
        cls,
        settings: SaverSettings,
        *,
        store: StoreClient | None = None,
        serializer: Serializer | None = None,
    ) -> DynamoDBSaver:
        """Build a saver from ``SaverSettings`` (see ``config.load_settings``)."""
        return cls(
            store,
            checkpoints_table=settings.checkpoints_table,
            writes_table=settings.writes_table,
            ttl_seconds=settings.ttl_seconds,
            serializer=serializer,
            region_name=settings.region_name,
            endpoint_url=settings.endpoint_url,
            max_batch_size=settings.max_batch_size,
            max_batch_retries=settings.max_batch_retries,
            page_size=settings.page_size,
        )

    async def close(self) -> None:
        await self.store.close()

    def _expires_at(self) -> int | None:
        """Absolute expiry (epoch seconds) for a record written now."""
        if self.settings.ttl_seconds is None:
            return None
        return int(time.time() + self.settings.ttl_seconds)

    # === Write ===

    async def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        *,
        parent_checkpoint_id: str | None = None,
    ) -> RunnableConfig:
        """Store a checkpoint with upsert semantics."""
        thread_id = require_thread_id(config)
        checkpoint_ns = get_checkpoint_ns(config)
        if parent_checkpoint_id is None:
            parent_checkpoint_id = optional_checkpoint_id(config)
        elif not isinstance(parent_checkpoint_id, str):
            raise InvalidConfigError("parent_checkpoint_id", parent_checkpoint_id)
        checkpoint_id = checkpoint.get("id")
        if not isinstance(checkpoint_id, str):
            raise InvalidConfigError("checkpoint_id", checkpoint_id, message=f"Invalid checkpoint_id: checkpoint['id'] must be a str, got {checkpoint_id!r}")
        # A checkpoint that can never carry writes is rejected before it is stored
        keys.check_checkpoint_identity(thread_id, checkpoint_id, checkpoint_ns)
        if parent_checkpoint_id == checkpoint_id:
            parent_checkpoint_id = None

        checkpoint_type, checkpoint_data = self.codec.encode(checkpoint)
        metadata_type, metadata_data = self.codec.encode(metadata)

        item: Item = {
            **keys.checkpoint_key(thread_id, checkpoint_id),
            "checkpoint_ns": checkpoint_ns,
            "type": checkpoint_type,
            "checkpoint": checkpoint_data,
            "metadata_type": metadata_type,
            "metadata": metadata_data,
        }
        if parent_checkpoint_id is not None:
            item["parent_checkpoint_id"] = parent_checkpoint_id
        expires_at = self._expires_at()
        if expires_at is not None:
            item[TTL_ATTRIBUTE] = expires_at

        await self.store.put_item(self.settings.checkpoints_table, item)
        logger.debug(
            "Stored checkpoint: thread_id=%s, checkpoint_ns=%s, checkpoint_id=%s, parent=%s",
            thread_id,
            checkpoint_ns,
            checkpoint_id,
            parent_checkpoint_id,
        )
        return make_config(thread_id, checkpoint_ns, checkpoint_id)

    async def put_writes(self, config: RunnableConfig, writes: Sequence[tuple[str, Any]], task_id: str) -> None:
        """Store task writes, batched and retried until every item is applied."""
        thread_id = require_thread_id(config)
        checkpoint_ns = get_checkpoint_ns(config)
        checkpoint_id = optional_checkpoint_id(config)
        if checkpoint_id is None:
            raise InvalidConfigError("checkpoint_id")
        if not isinstance(task_id, str):
            raise InvalidConfigError("task_id", task_id)
        if not writes:
            return

        partition = keys.write_partition_key(thread_id, checkpoint_id, checkpoint_ns)
        written_at = time.time_ns()
        expires_at = self._expires_at()
        items: list[Item] = []
        for idx, (channel, value) in enumerate(writes):
            value_type, value_data = self.codec.encode(value)
            item: Item = {
                keys.WRITE_PARTITION_KEY: partition,
                keys.WRITE_SORT_KEY: keys.write_sort_key(task_id, idx),
                "thread_id": thread_id,
                "checkpoint_ns": checkpoint_ns,
                "checkpoint_id": checkpoint_id,
                "task_id": task_id,
                "idx": idx,
                "channel": channel,
                "type": value_type,
                "value": value_data,
                "written_at": written_at,
            }
            if expires_at is not None:
                item[TTL_ATTRIBUTE] = expires_at
            items.append(item)

        size = self.settings.max_batch_size
        for start in range(0, len(items), size):
            await self._batch_put_with_retry(self.settings.writes_table, items[start : start + size])
        logger.debug(
            "Stored %d writes: thread_id=%s, checkpoint_id=%s, task_id=%s",
            len(items),
            thread_id,
            checkpoint_id,
            task_id,
        )

    async def _batch_put_with_retry(self, table: str, batch: list[Item]) -> None:
        """Put one batch, resubmitting unprocessed items with linear backoff."""
        pending = batch
        for attempt in range(self.settings.max_batch_retries + 1):
            if attempt:
                await asyncio.sleep(0.05 * attempt)
            pending = await self.store.batch_put(table, pending)
            if not pending:
                return
            logger.warning(
                "Batch write left %d unprocessed items on '%s' (attempt %d of %d)",
                len(pending),
                table,
                attempt + 1,
                self.settings.max_batch_retries + 1,
            )
        raise ProviderError(
            f"{len(pending)} items still unprocessed on '{table}' after {self.settings.max_batch_retries} retries",
            operation="batch_put",
        )

    # === Read ===

    async def get_tuple(self, config: RunnableConfig) -> CheckpointTuple | None:
        """Fetch the checkpoint the config addresses (latest when no id is given)."""
        thread_id = require_thread_id(config)
        checkpoint_id = optional_checkpoint_id(config)
        checkpoint_ns = get_checkpoint_ns(config)

        if checkpoint_id is not None:
            item = await self.store.get_item(
                self.settings.checkpoints_table,
                keys.checkpoint_key(thread_id, checkpoint_id),
            )
            if item is None or item.get("checkpoint_ns", "") != checkpoint_ns:
                return None
        else:
            item = await self._latest_item(thread_id, checkpoint_ns)
            if item is None:
                return None

        return await self._to_tuple(item)

    async def _latest_item(self, thread_id: str, checkpoint_ns: str) -> Item | None:
        async for item in self._iter_checkpoint_items(thread_id, checkpoint_ns=checkpoint_ns, first_page_size=1):
            return item
        return None

    def list(
        self,
        config: RunnableConfig,
        *,
        filter: dict[str, Any] | None = None,
        before: RunnableConfig | str | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        """Iterate a thread's checkpoints, newest first.

        The config is validated when ``list`` is called; pages are only
        fetched as the iterator is consumed.

        Args:
            config: Thread to list. When it carries ``checkpoint_ns`` only that
                namespace is listed, otherwise every namespace of the thread.
            filter: Metadata fields every yielded checkpoint must match.
            before: Only checkpoints whose id sorts strictly before this one
                (an id, or a config carrying ``checkpoint_id``).
            limit: Stop after this many checkpoints.
        """
        thread_id = require_thread_id(config)
        checkpoint_ns = get_checkpoint_ns(config) if "checkpoint_ns" in get_configurable(config) else None
        before_id = _before_checkpoint_id(before)
        return self._list(thread_id, checkpoint_ns, filter, before_id, limit)

    async def _list(
        self,
        thread_id: str,
        checkpoint_ns: str | None,
        filter: dict[str, Any] | None,
        before_id: str | None,
        limit: int | None,
    ) -> AsyncIterator[CheckpointTuple]:
        if limit is not None and limit <= 0:
            return

        yielded = 0
        async for item in self._iter_checkpoint_items(thread_id, checkpoint_ns=checkpoint_ns, before=before_id):
            metadata = self.codec.decode(item.get("metadata_type"), item.get("metadata"))
            if filter and not _matches(metadata, filter):
                continue
            yield await self._to_tuple(item, metadata=metadata)
            yielded += 1
            if limit is not None and yielded >= limit:
                return

    async def _iter_checkpoint_items(
        self,
        thread_id: str,
        *,
        checkpoint_ns: str | None,
        before: str | None = None,
        first_page_size: int | None = None,
    ) -> AsyncIterator[Item]:
        """Yield raw checkpoint items newest first, one page at a time.

        ``first_page_size`` shrinks only the first request; later pages use
        the configured page size.
        """
        start_key: Item | None = None
        page_size = first_page_size or self.settings.page_size
        while True:
            page = await self.store.query(
                self.settings.checkpoints_table,
                partition=(keys.CHECKPOINT_PARTITION_KEY, thread_id),
                sort_key=keys.CHECKPOINT_SORT_KEY,
                sort_before=keys.checkpoint_id_sort_key(before) if before is not None else None,
                filters={"checkpoint_ns": checkpoint_ns} if checkpoint_ns is not None else None,
                descending=True,
                limit=page_size,
                start_key=start_key,
            )
            logger.debug("Fetched checkpoint page: thread_id=%s, items=%d", thread_id, len(page.items))
            for item in page.items:
                yield item
            if page.last_key is None:
                return
            start_key = page.last_key
            page_size = self.settings.page_size

    async def _get_pending_writes(self, thread_id: str, checkpoint_ns: str, checkpoint_id: str) -> list[PendingWrite]:
        """Read every write staged against a checkpoint.

        Groups follow first-arrival order of each task; ``idx`` ascends inside
        a group.
        """
        partition = keys.join_write_partition_key(thread_id, checkpoint_id, checkpoint_ns)
        items: list[Item] = []
        start_key: Item | None = None
        while True:
            page = await self.store.query(
                self.settings.writes_table,
                partition=(keys.WRITE_PARTITION_KEY, partition),
                sort_key=keys.WRITE_SORT_KEY,
                start_key=start_key,
            )
            items.extend(page.items)
            if page.last_key is None:
                break
            start_key = page.last_key

        slots = [keys.parse_write_sort_key(item[keys.WRITE_SORT_KEY]) for item in items]
        first_seen: dict[str, int] = {}
        for item, slot in zip(items, slots):
            written_at = item.get("written_at", 0)
            if slot.task_id not in first_seen or written_at < first_seen[slot.task_id]:
                first_seen[slot.task_id] = written_at

        ordered = sorted(
            zip(items, slots),
            key=lambda pair: (first_seen[pair[1].task_id], pair[1].task_id, pair[1].idx),
        )
        return [
            (slot.task_id, item["channel"], self.codec.decode(item.get("type"), item.get("value")))
            for item, slot in ordered
        ]

    async def _to_tuple(self, item: Item, *, metadata: Any = None) -> CheckpointTuple:
        thread_id = item[keys.CHECKPOINT_PARTITION_KEY]
        checkpoint_id = item[keys.CHECKPOINT_SORT_KEY]
        checkpoint_ns = item.get("checkpoint_ns", "")

        checkpoint = self.codec.decode(item.get("type"), item.get("checkpoint"))
        if metadata is None:
            metadata = self.codec.decode(item.get("metadata_type"), item.get("metadata"))

        parent_id = item.get("parent_checkpoint_id")
        if parent_id is None and isinstance(metadata, dict):
            parent_id = (metadata.get("parents") or {}).get(checkpoint_ns)

        return CheckpointTuple(
            config=make_config(thread_id, checkpoint_ns, checkpoint_id),
            checkpoint=checkpoint,
            metadata=metadata,
            parent_config=make_config(thread_id, checkpoint_ns, parent_id) if parent_id else None,
            pending_writes=await self._get_pending_writes(thread_id, checkpoint_ns, checkpoint_id),
        )


def _before_checkpoint_id(before: RunnableConfig | str | None) -> str | None:
    if before is None or isinstance(before, str):
        return before
    checkpoint_id = optional_checkpoint_id(before)
    if checkpoint_id is None:
        raise InvalidConfigError("checkpoint_id", message="Invalid checkpoint_id: 'before' config has no checkpoint_id")
    return checkpoint_id


def _matches(metadata: Any, filter: dict[str, Any]) -> bool:
    if not isinstance(metadata, dict):
        return False
    return all(k in metadata and metadata[k] == v for k, v in filter.items())
