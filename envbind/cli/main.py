"""Main CLI entry point for envbind.

This module provides the ``envbind`` command group with commands to list
the variables a structure consumes, check for unknown variables, and show
the values a structure binds from the current environment.
"""

from __future__ import annotations

from typing import Any

import click
from pydantic import ValidationError

from envbind import __version__
from envbind.binder import load
from envbind.checks import check_disallowed
from envbind.cli.utils import (
    flatten_dict,
    format_output,
    import_target,
    print_error,
    print_success,
    redact_sensitive_values,
    to_json_value,
)
from envbind.errors import DisallowedVariableError, EnvBindError
from envbind.settings import CliConfig, configure_logging, load_cli_config
from envbind.usage import describe

FORMAT_CHOICE = click.Choice(["table", "yaml", "json"], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="envbind")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    r"""Bind configuration structures to environment variables.

    TARGET arguments name a pydantic model or dataclass as
    ``package.module:ClassName``.

    \b
    Examples:
        $ envbind keys myapp.config:AppConfig --prefix APP
        $ envbind check myapp.config:AppConfig --prefix APP
        $ envbind bind myapp.config:AppConfig --prefix APP --format yaml

    \b
    Settings are read from the environment:
        ENVBIND_FORMAT            default output format (table, yaml, json)
        ENVBIND_REDACT            hide secret-looking values (default: true)
        ENVBIND_LOGGING__LEVEL    log level (default: WARNING)
    """
    ctx.ensure_object(dict)
    try:
        settings = load_cli_config()
    except (EnvBindError, ValidationError) as e:
        print_error(f"Invalid ENVBIND_* settings: {e}")
    if verbose:
        settings.logging.level = "DEBUG"
    configure_logging(settings.logging)
    ctx.obj["settings"] = settings


def _settings(ctx: click.Context) -> CliConfig:
    settings: CliConfig = ctx.obj["settings"]
    return settings


@cli.command()
@click.argument("target")
@click.option("--prefix", "-p", default="", help="Key prefix (default: none)")
@click.option(
    "--format",
    "-f",
    "format_type",
    type=FORMAT_CHOICE,
    default=None,
    help="Output format (default: ENVBIND_FORMAT or table)",
)
@click.pass_context
def keys(ctx: click.Context, target: str, prefix: str, format_type: str | None) -> None:
    r"""List the environment variables TARGET consumes.

    \b
    Examples:
        $ envbind keys myapp.config:AppConfig --prefix APP
        $ envbind keys myapp.config:AppConfig -p APP -f json
    """
    spec = import_target(target)
    try:
        rows: list[Any] = describe(prefix, spec)
    except EnvBindError as e:
        print_error(str(e))
    fmt = (format_type or _settings(ctx).output_format).lower()
    click.echo(format_output(rows, fmt))  # type: ignore[arg-type]


@cli.command()
@click.argument("target")
@click.option("--prefix", "-p", default="", help="Key prefix (default: none)")
@click.pass_context
def check(ctx: click.Context, target: str, prefix: str) -> None:
    r"""Report variables under PREFIX that TARGET does not consume.

    \b
    Examples:
        $ envbind check myapp.config:AppConfig --prefix APP

    \b
    Exit codes:
        0 - Every variable under the prefix is consumed
        1 - Unknown variables were found
    """
    spec = import_target(target)
    try:
        check_disallowed(prefix, spec)
    except DisallowedVariableError as e:
        print_error(f"{len(e.names)} unknown variable(s) under prefix {prefix!r}:", 0)
        for name in e.names:
            click.echo(f"  • {name}")
        ctx.exit(1)
    except EnvBindError as e:
        print_error(str(e))
    print_success(f"No unknown variables under prefix {prefix!r}")


@cli.command()
@click.argument("target")
@click.option("--prefix", "-p", default="", help="Key prefix (default: none)")
@click.option(
    "--format",
    "-f",
    "format_type",
    type=FORMAT_CHOICE,
    default=None,
    help="Output format (default: ENVBIND_FORMAT or table)",
)
@click.option(
    "--no-redact",
    is_flag=True,
    default=False,
    help="Show sensitive values (passwords, tokens, etc.)",
)
@click.pass_context
def bind(
    ctx: click.Context,
    target: str,
    prefix: str,
    format_type: str | None,
    no_redact: bool,
) -> None:
    r"""Bind TARGET from the current environment and show the result.

    \b
    Examples:
        $ envbind bind myapp.config:AppConfig --prefix APP
        $ envbind bind myapp.config:AppConfig -p APP --no-redact
    """
    settings = _settings(ctx)
    spec_class = import_target(target)
    try:
        instance = load(spec_class, prefix)
    except EnvBindError as e:
        print_error(str(e))

    data = to_json_value(instance)
    if not isinstance(data, dict):
        print_error(f"{target!r} did not bind to a structure")
    if settings.redact and not no_redact:
        data = redact_sensitive_values(data)

    fmt = (format_type or settings.output_format).lower()
    if fmt == "table":
        rows: list[Any] = [
            {"field": field, "value": value}
            for field, value in flatten_dict(data).items()
        ]
        click.echo(format_output(rows, "table"))
    else:
        click.echo(format_output(data, fmt))  # type: ignore[arg-type]


if __name__ == "__main__":
    cli()
