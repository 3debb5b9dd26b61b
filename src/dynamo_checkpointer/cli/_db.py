"""Store access helpers for CLI commands.

Builds a DynamoDBSaver from pyproject/environment settings plus CLI
overrides, and runs async calls from sync command bodies.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from dynamo_checkpointer.checkpointers import DynamoDBSaver
from dynamo_checkpointer.config import load_settings


def run_async(coro: Any) -> Any:
    """Run an async coroutine from sync CLI context."""
    return asyncio.run(coro)


def open_saver(
    *,
    checkpoints_table: str | None = None,
    writes_table: str | None = None,
    endpoint_url: str | None = None,
) -> DynamoDBSaver:
    """Create a saver from settings, with any non-None argument overriding them."""
    overrides = {
        name: value
        for name, value in (
            ("checkpoints_table", checkpoints_table),
            ("writes_table", writes_table),
            ("endpoint_url", endpoint_url),
        )
        if value is not None
    }
    settings = load_settings()
    if overrides:
        settings = replace(settings, **overrides)
    return DynamoDBSaver.from_settings(settings)
