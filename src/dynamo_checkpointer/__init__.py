"""dynamo-checkpointer - checkpoint persistence for graph execution on DynamoDB."""

from dynamo_checkpointer.checkpointers import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointSaver,
    CheckpointTuple,
    DynamoDBSaver,
    DynamoDBStore,
    JsonSerializer,
    MemoryStore,
    PickleSerializer,
    Serializer,
    StoreClient,
    new_checkpoint_id,
)
from dynamo_checkpointer.config import SaverSettings, load_settings
from dynamo_checkpointer.exceptions import (
    CheckpointerError,
    InvalidConfigError,
    ItemSizeExceededError,
    ProviderError,
    SerializationError,
)

__all__ = [
    "Checkpoint",
    "CheckpointMetadata",
    "CheckpointSaver",
    "CheckpointTuple",
    "CheckpointerError",
    "DynamoDBSaver",
    "DynamoDBStore",
    "InvalidConfigError",
    "ItemSizeExceededError",
    "JsonSerializer",
    "MemoryStore",
    "PickleSerializer",
    "ProviderError",
    "SaverSettings",
    "SerializationError",
    "Serializer",
    "StoreClient",
    "load_settings",
    "new_checkpoint_id",
]
