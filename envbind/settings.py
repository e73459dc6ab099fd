"""Settings for the envbind command-line tool.

The CLI reads its own settings from ``ENVBIND_*`` variables with envbind
itself, then validates them with pydantic.

Examples
--------
>>> config = load_cli_config(environ={"ENVBIND_LOGGING__LEVEL": "DEBUG"})
>>> config.logging.level
'DEBUG'
>>> config.output_format
'table'
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from envbind.binder import load
from envbind.environment import EnvironmentLookup
from envbind.tags import Env

ENV_PREFIX = "ENVBIND"


class LoggingConfig(BaseModel):
    """Configuration for logging.

    Parameters
    ----------
    level : str
        Log level.
    format : str
        Log format string.

    Examples
    --------
    >>> config = LoggingConfig()
    >>> config.level
    'WARNING'
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Log level"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )


class CliConfig(BaseModel):
    """Configuration for the envbind CLI.

    Parameters
    ----------
    output_format : str
        Default output format for listings.
    redact : bool
        Whether secret-looking values are hidden in ``envbind bind`` output.
    logging : LoggingConfig
        Logging configuration.
    """

    output_format: Annotated[Literal["table", "yaml", "json"], Env(key="FORMAT")] = (
        Field(default="table", description="Default output format")
    )
    redact: bool = Field(default=True, description="Hide secret-looking values")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )


def load_cli_config(
    environ: Mapping[str, str] | EnvironmentLookup | None = None,
) -> CliConfig:
    """Bind :class:`CliConfig` from ``ENVBIND_*`` variables and validate it.

    Raises
    ------
    EnvBindError
        If a variable cannot be bound.
    pydantic.ValidationError
        If a bound value is outside the allowed choices.
    """
    bound = load(CliConfig, ENV_PREFIX, environ=environ)
    return CliConfig.model_validate(bound.model_dump())


def configure_logging(config: LoggingConfig) -> None:
    """Configure the root logger from ``config``."""
    logging.basicConfig(level=config.level, format=config.format, force=True)
