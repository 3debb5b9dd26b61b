"""Thread inspection CLI commands: ls, show."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from dynamo_checkpointer.checkpointers.types import CheckpointTuple
from dynamo_checkpointer.cli import _db
from dynamo_checkpointer.cli._format import (
    DEFAULT_LIMIT,
    describe_value,
    print_ctas,
    print_json,
    print_lines,
    print_table,
    truncate_value,
)
from dynamo_checkpointer.exceptions import CheckpointerError

app = typer.Typer(help="Inspect a thread's checkpoints.")

# Common options
ThreadArg = Annotated[str, typer.Argument(help="Thread ID")]
NsOption = Annotated[str | None, typer.Option("--ns", help="Checkpoint namespace (default: all for ls, '' for show)")]
TableOption = Annotated[str | None, typer.Option("--table", help="Checkpoints table name")]
WritesTableOption = Annotated[str | None, typer.Option("--writes-table", help="Writes table name")]
EndpointOption = Annotated[str | None, typer.Option("--endpoint-url", help="DynamoDB endpoint URL")]
JsonFlag = Annotated[bool, typer.Option("--json", help="Output as JSON")]
OutputOption = Annotated[str | None, typer.Option("--output", help="Write JSON to file")]


def _thread_config(thread_id: str, ns: str | None, checkpoint_id: str | None = None) -> dict[str, Any]:
    configurable: dict[str, Any] = {"thread_id": thread_id}
    if ns is not None:
        configurable["checkpoint_ns"] = ns
    if checkpoint_id is not None:
        configurable["checkpoint_id"] = checkpoint_id
    return {"configurable": configurable}


def _parent_id(t: CheckpointTuple) -> str:
    if t.parent_config is None:
        return "—"
    return t.parent_config["configurable"]["checkpoint_id"]


@app.command("ls")
def threads_ls(
    thread_id: ThreadArg,
    ns: NsOption = None,
    before: Annotated[str | None, typer.Option("--before", help="Only checkpoints older than this ID")] = None,
    source: Annotated[str | None, typer.Option("--source", help="Filter by metadata source")] = None,
    limit: Annotated[int, typer.Option("--limit", help="Max results")] = DEFAULT_LIMIT,
    table: TableOption = None,
    writes_table: WritesTableOption = None,
    endpoint_url: EndpointOption = None,
    as_json: JsonFlag = False,
    output: OutputOption = None,
):
    """List a thread's checkpoints, newest first."""
    saver = _db.open_saver(checkpoints_table=table, writes_table=writes_table, endpoint_url=endpoint_url)
    metadata_filter = {"source": source} if source else None

    async def collect() -> list[CheckpointTuple]:
        try:
            return [t async for t in saver.list(_thread_config(thread_id, ns), filter=metadata_filter, before=before, limit=limit)]
        finally:
            await saver.close()

    try:
        tuples = _db.run_async(collect())
    except CheckpointerError as e:
        print(f"Error: {e}")
        raise typer.Exit(1) from e

    if as_json:
        print_json("threads.ls", [t.to_dict() for t in tuples], output)
        return

    if not tuples:
        print(f"No checkpoints found for thread '{thread_id}'.")
        return

    print(f"\nThread {thread_id} ({len(tuples)} checkpoints)\n")

    headers = ["Checkpoint", "NS", "Step", "Source", "Parent", "Writes", "Timestamp"]
    rows = []
    for t in tuples:
        metadata = t.metadata or {}
        rows.append(
            [
                t.config["configurable"]["checkpoint_id"],
                t.config["configurable"]["checkpoint_ns"] or "—",
                str(metadata.get("step", "—")),
                str(metadata.get("source") or "—"),
                _parent_id(t),
                str(len(t.pending_writes)),
                str((t.checkpoint or {}).get("ts") or "—"),
            ]
        )
    print_lines(print_table(headers, rows))

    print_ctas(
        [
            f"dynamo-checkpointer threads show {thread_id} --checkpoint-id <id>   to inspect a checkpoint",
            f"dynamo-checkpointer threads ls {thread_id} --before <id>            for older checkpoints",
        ]
    )


@app.command("show")
def threads_show(
    thread_id: ThreadArg,
    checkpoint_id: Annotated[str | None, typer.Option("--checkpoint-id", help="Checkpoint ID (default: latest)")] = None,
    ns: NsOption = None,
    table: TableOption = None,
    writes_table: WritesTableOption = None,
    endpoint_url: EndpointOption = None,
    as_json: JsonFlag = False,
    output: OutputOption = None,
):
    """Show one checkpoint with its metadata and pending writes."""
    saver = _db.open_saver(checkpoints_table=table, writes_table=writes_table, endpoint_url=endpoint_url)

    async def fetch() -> CheckpointTuple | None:
        try:
            return await saver.get_tuple(_thread_config(thread_id, ns, checkpoint_id))
        finally:
            await saver.close()

    try:
        t = _db.run_async(fetch())
    except CheckpointerError as e:
        print(f"Error: {e}")
        raise typer.Exit(1) from e

    if t is None:
        target = f"checkpoint '{checkpoint_id}'" if checkpoint_id else "checkpoints"
        print(f"Error: Thread '{thread_id}' has no {target}.")
        raise typer.Exit(1)

    if as_json:
        print_json("threads.show", t.to_dict(), output)
        return

    configurable = t.config["configurable"]
    metadata = t.metadata or {}
    print(f"\nCheckpoint {configurable['checkpoint_id']}")
    print(f"  Thread:    {configurable['thread_id']}")
    print(f"  Namespace: {configurable['checkpoint_ns'] or '—'}")
    print(f"  Parent:    {_parent_id(t)}")
    print(f"  Source:    {metadata.get('source') or '—'}")
    print(f"  Step:      {metadata.get('step', '—')}")

    channel_values = (t.checkpoint or {}).get("channel_values") or {}
    if channel_values:
        print("\nChannels\n")
        rows = [[name, describe_value(value), truncate_value(value)] for name, value in channel_values.items()]
        print_lines(print_table(["Channel", "Type", "Value"], rows))

    if t.pending_writes:
        print(f"\nPending writes ({len(t.pending_writes)})\n")
        rows = [[task_id, channel, truncate_value(value)] for task_id, channel, value in t.pending_writes]
        print_lines(print_table(["Task", "Channel", "Value"], rows))
