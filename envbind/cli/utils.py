"""CLI utility functions for envbind.

This module provides output formatting, error reporting, target import and
redaction helpers for the CLI.
"""

from __future__ import annotations

import dataclasses
import importlib
import json
import sys
from enum import Enum
from io import StringIO
from pathlib import PurePath
from typing import Any, Literal

import click
import numpy as np
import yaml
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from envbind.convert import URL_TYPES

# Type alias for JSON values (recursive type)
type JsonValue = (
    str | int | float | bool | None | list[JsonValue] | dict[str, JsonValue]
)

console = Console()

SENSITIVE_MARKERS: frozenset[str] = frozenset(
    {"password", "secret", "token", "api_key", "apikey", "credential", "private_key"}
)


def import_target(target: str) -> type:
    """Import a structure class from ``package.module:ClassName``.

    Parameters
    ----------
    target : str
        Import path of the class.

    Returns
    -------
    type
        The imported class.

    Raises
    ------
    click.BadParameter
        If the path is malformed or cannot be imported.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(
            f"expected 'package.module:ClassName', got {target!r}", param_hint="TARGET"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(
            f"cannot import module {module_name!r}: {e}", param_hint="TARGET"
        ) from e

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise click.BadParameter(
                f"module {module_name!r} has no attribute {attr!r}", param_hint="TARGET"
            ) from e
    if not isinstance(obj, type):
        raise click.BadParameter(f"{target!r} is not a class", param_hint="TARGET")
    return obj


def to_json_value(value: Any) -> JsonValue:
    """Convert a bound field value to plain JSON-compatible data.

    Parameters
    ----------
    value : Any
        Field value.

    Returns
    -------
    JsonValue
        Plain data; unknown objects are rendered with ``str``.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, np.generic):
        return value.item()  # type: ignore[no-any-return]
    if isinstance(value, Enum):
        return to_json_value(value.value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (PurePath, *URL_TYPES)):
        return str(value)
    if isinstance(value, BaseModel):
        return {
            name: to_json_value(getattr(value, name, None))
            for name in type(value).model_fields
        }
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: to_json_value(getattr(value, field.name, None))
            for field in dataclasses.fields(value)
        }
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_value(item) for item in value]
    return str(value)


def format_output(
    data: dict[str, JsonValue] | list[JsonValue],
    format_type: Literal["yaml", "json", "table"],
) -> str:
    """Format data for CLI output.

    Parameters
    ----------
    data : dict[str, JsonValue] | list[JsonValue]
        Data to format. Table output requires a list of flat dicts.
    format_type : {"yaml", "json", "table"}
        Output format type.

    Returns
    -------
    str
        Formatted output string.

    Raises
    ------
    ValueError
        If format_type is invalid or data cannot be formatted.
    """
    if format_type == "yaml":
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif format_type == "json":
        return json.dumps(data, indent=2)
    elif format_type == "table":
        if not isinstance(data, list):
            raise ValueError("Table format requires a list of rows")
        return _rows_to_table(data)
    else:
        raise ValueError(f"Invalid format type: {format_type}")


def _rows_to_table(rows: list[JsonValue]) -> str:
    """Render a list of flat dictionaries as a rich table string.

    Parameters
    ----------
    rows : list[JsonValue]
        Rows sharing the same keys.

    Returns
    -------
    str
        Rendered table as string.
    """
    table = Table(show_header=True, header_style="bold cyan")
    columns: list[str] = []
    for row in rows:
        if isinstance(row, dict):
            columns.extend(key for key in row if key not in columns)
    for column in columns:
        table.add_column(column.title(), style="white")

    for row in rows:
        if not isinstance(row, dict):
            continue
        table.add_row(
            *(escape("" if row.get(c) is None else str(row.get(c))) for c in columns)
        )

    # Capture table output
    string_io = StringIO()
    temp_console = Console(file=string_io, force_terminal=False, width=160)
    temp_console.print(table)
    return string_io.getvalue()


def redact_sensitive_values(data: dict[str, JsonValue]) -> dict[str, JsonValue]:
    """Redact sensitive values in bound configuration.

    Parameters
    ----------
    data : dict[str, JsonValue]
        Configuration data.

    Returns
    -------
    dict[str, JsonValue]
        Data with sensitive values redacted.

    Examples
    --------
    >>> redact_sensitive_values({"db": {"password": "hunter2"}, "port": 5432})
    {'db': {'password': '***REDACTED***'}, 'port': 5432}
    """
    result: dict[str, JsonValue] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = redact_sensitive_values(value)
        elif any(marker in key.lower() for marker in SENSITIVE_MARKERS):
            result[key] = "***REDACTED***" if value else None
        else:
            result[key] = value
    return result


def print_error(message: str, exit_code: int = 1) -> None:
    """Print error message and exit.

    Parameters
    ----------
    message : str
        Error message to display.
    exit_code : int
        Exit code (default: 1). Pass 0 to not exit.
    """
    console.print(f"[red]✗ Error:[/red] {escape(message)}")
    if exit_code != 0:
        sys.exit(exit_code)


def print_success(message: str) -> None:
    """Print success message.

    Parameters
    ----------
    message : str
        Success message to display.
    """
    console.print(f"[green]✓ {escape(message)}[/green]")


def flatten_dict(data: dict[str, JsonValue], parent: str = "") -> dict[str, JsonValue]:
    """Flatten nested dictionaries into dotted keys.

    Examples
    --------
    >>> flatten_dict({"a": {"b": 1}, "c": 2})
    {'a.b': 1, 'c': 2}
    """
    result: dict[str, JsonValue] = {}
    for key, value in data.items():
        dotted = f"{parent}.{key}" if parent else key
        if isinstance(value, dict):
            result.update(flatten_dict(value, dotted))
        else:
            result[dotted] = value
    return result
