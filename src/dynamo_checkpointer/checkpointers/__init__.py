"""Checkpointer package for thread persistence.

Provides the ``CheckpointSaver`` ABC, the ``DynamoDBSaver`` implementation,
the store capability interface, and supporting types.
"""

from dynamo_checkpointer.checkpointers.base import CheckpointSaver
from dynamo_checkpointer.checkpointers.dynamodb import DynamoDBSaver
from dynamo_checkpointer.checkpointers.serializers import JsonSerializer, PayloadCodec, PickleSerializer, Serializer
from dynamo_checkpointer.checkpointers.store import DynamoDBStore, MemoryStore, QueryPage, StoreClient
from dynamo_checkpointer.checkpointers.types import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointTuple,
    PendingWrite,
    RunnableConfig,
    new_checkpoint_id,
)

__all__ = [
    "Checkpoint",
    "CheckpointMetadata",
    "CheckpointSaver",
    "CheckpointTuple",
    "DynamoDBSaver",
    "DynamoDBStore",
    "JsonSerializer",
    "MemoryStore",
    "PayloadCodec",
    "PendingWrite",
    "PickleSerializer",
    "QueryPage",
    "RunnableConfig",
    "Serializer",
    "StoreClient",
    "new_checkpoint_id",
]
