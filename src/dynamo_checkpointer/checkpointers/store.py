"""Store capability interface and its implementations.

The saver only needs four capabilities from a key-value store: point get,
point put, bounded batch put and a range query over one partition. Anything
implementing ``StoreClient`` can back a ``DynamoDBSaver``.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from dynamo_checkpointer.checkpointers import keys
from dynamo_checkpointer.exceptions import ItemSizeExceededError, ProviderError

logger = logging.getLogger("dynamo_checkpointer.checkpointers")

# DynamoDB limits
MAX_ITEM_SIZE = 400 * 1024
MAX_BATCH_SIZE = 25

Item = dict[str, Any]


@dataclass
class QueryPage:
    """One page of a partition query.

    ``last_key`` is the continuation token: pass it back as ``start_key`` to
    fetch the next page. None means the partition is exhausted.
    """

    items: list[Item] = field(default_factory=list)
    last_key: Item | None = None


class StoreClient(ABC):
    """Async capability interface over a partitioned key-value store."""

    @abstractmethod
    async def get_item(self, table: str, key: Item) -> Item | None:
        """Point lookup by full primary key. None if absent."""
        ...

    @abstractmethod
    async def put_item(self, table: str, item: Item) -> None:
        """Upsert one item (full replace)."""
        ...

    @abstractmethod
    async def batch_put(self, table: str, items: list[Item]) -> list[Item]:
        """Upsert up to ``MAX_BATCH_SIZE`` items.

        Returns the items the store did not apply; the caller retries them.
        """
        ...

    @abstractmethod
    async def query(
        self,
        table: str,
        *,
        partition: tuple[str, str],
        sort_key: str,
        sort_before: str | None = None,
        filters: dict[str, Any] | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_key: Item | None = None,
    ) -> QueryPage:
        """Read one page of items from a partition, ordered by ``sort_key``.

        Args:
            partition: ``(attribute, value)`` selecting the partition.
            sort_key: Name of the sort key attribute.
            sort_before: Exclusive upper bound on the sort key.
            filters: Attribute equality filters, applied after ``limit``
                (items that fail the filter still count towards the page).
            descending: Iterate from the highest sort key down.
            limit: Maximum number of items evaluated for this page.
            start_key: Continuation token from a previous page.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release client resources."""


def item_size(item: Item) -> int:
    """Approximate DynamoDB item size in bytes (names plus values)."""
    size = 0
    for name, value in item.items():
        size += len(name.encode("utf-8"))
        if isinstance(value, str):
            size += len(value.encode("utf-8"))
        elif isinstance(value, (bytes, bytearray)):
            size += len(value)
        elif isinstance(value, bool) or value is None:
            size += 1
        elif isinstance(value, (int, float, Decimal)):
            size += len(str(value)) // 2 + 1
        else:
            size += len(repr(value).encode("utf-8"))
    return size


class MemoryStore(StoreClient):
    """In-process store with DynamoDB's ordering, paging and size semantics.

    Intended for tests and local development. Tables must be declared up
    front with their key schema.

    Example::

        store = MemoryStore({"checkpoints": ("thread_id", "checkpoint_id")})
    """

    def __init__(self, key_schema: dict[str, tuple[str, str]], *, max_item_size: int = MAX_ITEM_SIZE):
        self.key_schema = dict(key_schema)
        self.max_item_size = max_item_size
        self._tables: dict[str, dict[tuple[str, str], Item]] = {name: {} for name in key_schema}

    @classmethod
    def for_tables(cls, checkpoints_table: str = "checkpoints", writes_table: str = "writes", **kwargs: Any) -> MemoryStore:
        """Store with the checkpoint and write tables a ``DynamoDBSaver`` expects."""
        return cls(
            {
                checkpoints_table: (keys.CHECKPOINT_PARTITION_KEY, keys.CHECKPOINT_SORT_KEY),
                writes_table: (keys.WRITE_PARTITION_KEY, keys.WRITE_SORT_KEY),
            },
            **kwargs,
        )

    def _table(self, table: str) -> dict[tuple[str, str], Item]:
        if table not in self._tables:
            raise ProviderError(f"Requested resource not found: table '{table}'", code="ResourceNotFoundException")
        return self._tables[table]

    def _key_of(self, table: str, item: Item) -> tuple[str, str]:
        partition_attr, sort_attr = self.key_schema[table]
        return item[partition_attr], item[sort_attr]

    async def get_item(self, table: str, key: Item) -> Item | None:
        item = self._table(table).get(self._key_of(table, key))
        return copy.deepcopy(item) if item is not None else None

    async def put_item(self, table: str, item: Item) -> None:
        rows = self._table(table)
        size = item_size(item)
        if size > self.max_item_size:
            raise ItemSizeExceededError(table, size=size, limit=self.max_item_size)
        rows[self._key_of(table, item)] = copy.deepcopy(item)

    async def batch_put(self, table: str, items: list[Item]) -> list[Item]:
        if len(items) > MAX_BATCH_SIZE:
            raise ProviderError(
                f"Too many items in batch: {len(items)} > {MAX_BATCH_SIZE}",
                operation="batch_put",
                code="ValidationException",
            )
        for item in items:
            await self.put_item(table, item)
        return []

    async def query(
        self,
        table: str,
        *,
        partition: tuple[str, str],
        sort_key: str,
        sort_before: str | None = None,
        filters: dict[str, Any] | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_key: Item | None = None,
    ) -> QueryPage:
        partition_attr, partition_value = partition
        rows = [
            item
            for item in self._table(table).values()
            if item.get(partition_attr) == partition_value
            and (sort_before is None or item[sort_key] < sort_before)
        ]
        rows.sort(key=lambda item: item[sort_key], reverse=descending)

        if start_key is not None:
            start = start_key[sort_key]
            rows = [item for item in rows if (item[sort_key] < start if descending else item[sort_key] > start)]

        evaluated = rows if limit is None else rows[:limit]
        last_key = None
        if limit is not None and len(rows) > limit:
            last = evaluated[-1]
            last_key = {partition_attr: last[partition_attr], sort_key: last[sort_key]}

        if filters:
            evaluated = [item for item in evaluated if all(item.get(k) == v for k, v in filters.items())]
        return QueryPage(items=[copy.deepcopy(item) for item in evaluated], last_key=last_key)


def _require_boto3() -> Any:
    """Import boto3 with a clear error message if not installed."""
    try:
        import boto3

        return boto3
    except ImportError:
        raise ImportError("DynamoDBStore requires boto3. Install it with: pip install dynamo-checkpointer") from None


def _to_dynamo(item: Item) -> dict[str, Any]:
    """Marshal a plain item into DynamoDB's typed wire format."""
    from boto3.dynamodb.types import TypeSerializer

    serializer = TypeSerializer()
    return {name: serializer.serialize(value) for name, value in item.items()}


def _from_dynamo(item: dict[str, Any]) -> Item:
    """Unmarshal a wire-format item back to plain Python types."""
    from boto3.dynamodb.types import Binary, TypeDeserializer

    deserializer = TypeDeserializer()
    out: Item = {}
    for name, attribute in item.items():
        value = deserializer.deserialize(attribute)
        if isinstance(value, Binary):
            value = value.value
        elif isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        out[name] = value
    return out


class DynamoDBStore(StoreClient):
    """DynamoDB-backed store using the low-level boto3 client.

    boto3 is synchronous, so every call runs in a worker thread via
    ``asyncio.to_thread``. Low-level clients are thread-safe, so one client is
    shared by all calls; items are marshalled with ``TypeSerializer`` and
    ``TypeDeserializer``. Credentials come from the standard AWS chain.

    Args:
        client: Existing ``boto3.client("dynamodb")``. Built from the other
            arguments when omitted.
        region_name: AWS region.
        endpoint_url: Custom endpoint (DynamoDB Local, localstack).
        session: boto3 session to build the client from.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        session: Any = None,
    ):
        boto3 = _require_boto3()
        self._owns_client = client is None
        if client is None:
            session = session or boto3.session.Session()
            client = session.client("dynamodb", region_name=region_name, endpoint_url=endpoint_url)
        self._client = client

    async def _call(self, table: str, operation: str, **kwargs: Any) -> Any:
        from botocore.exceptions import BotoCoreError, ClientError

        fn = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message", str(e))
            if code == "ValidationException" and "item size" in message.lower():
                raise ItemSizeExceededError(table, limit=MAX_ITEM_SIZE) from e
            logger.error("DynamoDB %s failed: table=%s, error=%s", operation, table, code)
            raise ProviderError(f"DynamoDB {operation} on '{table}' failed ({code}): {message}", operation=operation, code=code) from e
        except BotoCoreError as e:
            logger.error("DynamoDB %s failed: table=%s, error=%s", operation, table, e)
            raise ProviderError(f"DynamoDB {operation} on '{table}' failed: {e}", operation=operation) from e

    async def get_item(self, table: str, key: Item) -> Item | None:
        response = await self._call(table, "get_item", TableName=table, Key=_to_dynamo(key), ConsistentRead=True)
        item = response.get("Item")
        return _from_dynamo(item) if item is not None else None

    async def put_item(self, table: str, item: Item) -> None:
        await self._call(table, "put_item", TableName=table, Item=_to_dynamo(item))

    async def batch_put(self, table: str, items: list[Item]) -> list[Item]:
        if not items:
            return []
        response = await self._call(
            table,
            "batch_write_item",
            RequestItems={table: [{"PutRequest": {"Item": _to_dynamo(item)}} for item in items]},
        )
        unprocessed = response.get("UnprocessedItems", {}).get(table, [])
        return [_from_dynamo(request["PutRequest"]["Item"]) for request in unprocessed]

    async def query(
        self,
        table: str,
        *,
        partition: tuple[str, str],
        sort_key: str,
        sort_before: str | None = None,
        filters: dict[str, Any] | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_key: Item | None = None,
    ) -> QueryPage:
        from boto3.dynamodb.conditions import Attr, ConditionExpressionBuilder, Key
        from boto3.dynamodb.types import TypeSerializer

        partition_attr, partition_value = partition
        condition = Key(partition_attr).eq(partition_value)
        if sort_before is not None:
            condition = condition & Key(sort_key).lt(sort_before)

        # One builder for both expressions keeps placeholder names unique
        builder = ConditionExpressionBuilder()
        key_expression = builder.build_expression(condition, is_key_condition=True)
        names = dict(key_expression.attribute_name_placeholders)
        values = dict(key_expression.attribute_value_placeholders)

        params: dict[str, Any] = {
            "TableName": table,
            "KeyConditionExpression": key_expression.condition_expression,
            "ScanIndexForward": not descending,
            "ConsistentRead": True,
        }
        if filters:
            expressions = [Attr(name).eq(value) for name, value in filters.items()]
            filter_condition = expressions[0]
            for expression in expressions[1:]:
                filter_condition = filter_condition & expression
            filter_expression = builder.build_expression(filter_condition)
            names.update(filter_expression.attribute_name_placeholders)
            values.update(filter_expression.attribute_value_placeholders)
            params["FilterExpression"] = filter_expression.condition_expression
        serializer = TypeSerializer()
        params["ExpressionAttributeNames"] = names
        params["ExpressionAttributeValues"] = {placeholder: serializer.serialize(value) for placeholder, value in values.items()}
        if limit is not None:
            params["Limit"] = limit
        if start_key is not None:
            params["ExclusiveStartKey"] = _to_dynamo(start_key)

        response = await self._call(table, "query", **params)
        last_key = response.get("LastEvaluatedKey")
        return QueryPage(
            items=[_from_dynamo(item) for item in response.get("Items", [])],
            last_key=_from_dynamo(last_key) if last_key is not None else None,
        )

    async def close(self) -> None:
        if self._owns_client:
            self._client.close()
