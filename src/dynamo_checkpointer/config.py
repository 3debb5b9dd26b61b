"""Saver settings from pyproject.toml and the environment.

Reads the [tool.dynamo_checkpointer] section of the nearest pyproject.toml,
then applies environment overrides:

    DYNAMO_CHECKPOINTER_CHECKPOINTS_TABLE
    DYNAMO_CHECKPOINTER_WRITES_TABLE
    DYNAMO_CHECKPOINTER_TTL          (seconds)
    AWS_DYNAMODB_ENDPOINT
    AWS_REGION
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from dynamo_checkpointer.checkpointers.store import MAX_BATCH_SIZE


@dataclass(frozen=True)
class SaverSettings:
    """Connection and behaviour settings for ``DynamoDBSaver``.

    Attributes:
        checkpoints_table: Table holding checkpoint records.
        writes_table: Table holding pending-write records.
        ttl_seconds: Expire every record this long after it is written.
        region_name: AWS region for the DynamoDB client.
        endpoint_url: Custom endpoint (DynamoDB Local, localstack).
        max_batch_size: Items per batch write request.
        max_batch_retries: Retries for unprocessed batch items before failing.
        page_size: Items per history query page.
    """

    checkpoints_table: str = "checkpoints"
    writes_table: str = "writes"
    ttl_seconds: int | None = None
    region_name: str | None = None
    endpoint_url: str | None = None
    max_batch_size: int = MAX_BATCH_SIZE
    max_batch_retries: int = 5
    page_size: int = 100

    def __post_init__(self) -> None:
        if self.ttl_seconds is not None and self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {self.ttl_seconds}")
        if not 1 <= self.max_batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"max_batch_size must be between 1 and {MAX_BATCH_SIZE}, got {self.max_batch_size}")
        if self.max_batch_retries < 0:
            raise ValueError(f"max_batch_retries must be >= 0, got {self.max_batch_retries}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")


def find_pyproject(start: Path | None = None) -> Path | None:
    """Walk up from start directory to find pyproject.toml."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def _read_section(start: Path | None) -> dict[str, Any]:
    path = find_pyproject(start)
    if path is None:
        return {}

    if sys.version_info >= (3, 11):
        import tomllib
    else:
        try:
            import tomli as tomllib
        except ImportError:
            return {}

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data.get("tool", {}).get("dynamo_checkpointer", {})


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if table := environ.get("DYNAMO_CHECKPOINTER_CHECKPOINTS_TABLE"):
        overrides["checkpoints_table"] = table
    if table := environ.get("DYNAMO_CHECKPOINTER_WRITES_TABLE"):
        overrides["writes_table"] = table
    if ttl := environ.get("DYNAMO_CHECKPOINTER_TTL"):
        overrides["ttl_seconds"] = int(ttl)
    if endpoint := environ.get("AWS_DYNAMODB_ENDPOINT"):
        overrides["endpoint_url"] = endpoint
    if region := environ.get("AWS_REGION"):
        overrides["region_name"] = region
    return overrides


def load_settings(start: Path | None = None, environ: Mapping[str, str] | None = None) -> SaverSettings:
    """Load settings from the nearest pyproject.toml plus environment overrides.

    Unknown keys in the pyproject section are ignored. Returns defaults if
    neither source sets anything.
    """
    known = {f.name for f in fields(SaverSettings)}
    section = {k: v for k, v in _read_section(start).items() if k in known}
    settings = SaverSettings(**section)
    overrides = _env_overrides(os.environ if environ is None else environ)
    return replace(settings, **overrides) if overrides else settings
