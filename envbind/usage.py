"""Usage listings of the variables a structure consumes."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from envbind.binder import gather


def describe(prefix: str, spec: Any) -> list[dict[str, Any]]:
    """Describe each variable ``spec`` consumes.

    Parameters
    ----------
    prefix : str
        Key prefix.
    spec : Any
        Structure instance or class.

    Returns
    -------
    list[dict[str, Any]]
        Rows with ``key``, ``field``, ``type``, ``default``, ``required`` and
        ``description`` entries, in declaration order.
    """
    return [
        {
            "key": info.key,
            "field": info.field,
            "type": info.type_name,
            "default": info.default,
            "required": info.required,
            "description": info.description,
        }
        for info in gather(prefix, spec)
    ]


def usage_table(prefix: str, spec: Any, title: str | None = None) -> Table:
    """Build a rich table listing the variables ``spec`` consumes."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Key", style="yellow", no_wrap=True)
    table.add_column("Type", style="white")
    table.add_column("Default", style="white")
    table.add_column("Required", style="white")
    table.add_column("Description", style="white")

    for row in describe(prefix, spec):
        table.add_row(
            escape(row["key"]),
            escape(row["type"]),
            "" if row["default"] is None else escape(row["default"]),
            "true" if row["required"] else "",
            escape(row["description"] or ""),
        )
    return table


def print_usage(prefix: str, spec: Any, console: Console | None = None) -> None:
    """Print the usage table for ``spec``."""
    (console or Console()).print(usage_table(prefix, spec))
