"""Formatting utilities for CLI output.

Handles human-readable tables, value truncation and JSON envelope wrapping.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

# JSON envelope version, bump on breaking changes to JSON structure
SCHEMA_VERSION = 1

DEFAULT_LIMIT = 20
MAX_LINES = 100


def json_envelope(command: str, data: Any) -> dict[str, Any]:
    """Wrap data in the standard JSON output envelope."""
    return {
        "schema_version": SCHEMA_VERSION,
        "command": command,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    return str(value)


def print_json(command: str, data: Any, output: str | None = None) -> None:
    """Print JSON envelope to stdout or write to file."""
    envelope = json_envelope(command, data)
    text = json.dumps(envelope, indent=2, default=_json_default, ensure_ascii=False)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        size_kb = len(text.encode()) / 1024
        print(f"Wrote {command} output to {output} ({size_kb:.1f}KB)")
    else:
        print(text)


def describe_value(value: Any) -> str:
    """Short type/size description of a value."""
    if value is None:
        return "—"
    if isinstance(value, (list, tuple)):
        return f"list, {len(value)} items"
    if isinstance(value, dict):
        return f"dict, {len(value)} keys"
    if isinstance(value, (bytes, bytearray)):
        return f"bytes, {len(value)}B"
    if isinstance(value, str):
        size = len(value.encode("utf-8"))
        if size < 1024:
            return f"str, {size}B"
        return f"str, {size / 1024:.1f}KB"
    return type(value).__name__


def truncate_value(value: Any, max_chars: int = 80) -> str:
    """Truncate a value for display."""
    text = value if isinstance(value, str) else json.dumps(value, default=_json_default, ensure_ascii=False)
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "…"


def print_table(headers: list[str], rows: list[list[str]], indent: int = 2) -> list[str]:
    """Format a table with aligned columns.

    Returns list of lines (does not print).
    """
    if not rows:
        return []

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(cell))

    prefix = " " * indent
    lines = [
        prefix + "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)),
        prefix + "  ".join("─" * w for w in widths),
    ]

    for row in rows:
        cells = []
        for i, cell in enumerate(row):
            if i < len(widths):
                # Right-align numeric columns
                if headers[i] in ("Step", "Idx", "Writes"):
                    cells.append(cell.rjust(widths[i]))
                else:
                    cells.append(cell.ljust(widths[i]))
        lines.append(prefix + "  ".join(cells))

    return lines


def print_lines(lines: list[str], max_lines: int = MAX_LINES) -> None:
    """Print lines with truncation warning if too many."""
    for line in lines[:max_lines]:
        print(line)
    if len(lines) > max_lines:
        remaining = len(lines) - max_lines
        print(f"\n  # ... {remaining} more lines (use --limit to control)")


def print_ctas(ctas: list[str]) -> None:
    """Print context-aware next-step suggestions after command output."""
    print()
    for cta in ctas:
        print(f"  → {cta}")
