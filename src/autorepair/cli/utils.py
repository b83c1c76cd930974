"""
CLI utility helpers - consoles and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def key_value_table(data: dict[str, Any], *, title: str = "") -> Table:
    """Two-column table for a flat mapping."""
    table = Table(title=title or None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, set | frozenset | list | tuple):
            value = ", ".join(sorted(str(v) for v in value)) or "-"
        table.add_row(key, "-" if value is None else str(value))
    return table
