"""dynamo-checkpointer CLI - inspect stored threads.

Entry point for the `dynamo-checkpointer` command. Requires ``pip install dynamo-checkpointer[cli]``.

Commands:
    threads ls      List a thread's checkpoints, newest first
    threads show    Show one checkpoint with its pending writes
"""

from __future__ import annotations


def _require_typer():
    """Check that typer is available."""
    try:
        import typer  # noqa: F401
    except ImportError:
        import sys

        print("Error: typer is required for the CLI. Install with: pip install dynamo-checkpointer[cli]", file=sys.stderr)
        raise SystemExit(1) from None


def create_app():
    """Create the Typer app with all subcommands."""
    _require_typer()

    import typer

    from dynamo_checkpointer.cli.threads import app as threads_app

    app = typer.Typer(
        name="dynamo-checkpointer",
        help="Inspect checkpoints stored in DynamoDB.",
        no_args_is_help=True,
    )
    app.add_typer(threads_app, name="threads")

    return app


def main():
    """CLI entry point."""
    app = create_app()
    app()
