"""Bind typed configuration structures to environment variables.

Fields of pydantic models and dataclasses are resolved to environment
variable keys, looked up (with a nested fallback for collapsed nesting) and
converted to their declared types.

Examples
--------
>>> from typing import Annotated
>>> from pydantic import BaseModel, Field
>>> from envbind import Env, process
>>> class Database(BaseModel):
...     host: str = "localhost"
...     port: int = 5432
>>> class AppConfig(BaseModel):
...     name: Annotated[str, Env(required=True)] = ""
...     database: Database = Field(default_factory=Database)
>>> config = AppConfig()
>>> process("APP", config, environ={"APP_NAME": "demo", "APP_DATABASE__PORT": "6543"})
>>> config.database.port
6543
"""

from __future__ import annotations

from envbind.binder import VarInfo, gather, load, must_process, process
from envbind.capabilities import (
    BinaryUnmarshaler,
    Decoder,
    Setter,
    TextUnmarshaler,
)
from envbind.checks import check_disallowed
from envbind.environment import (
    EnvironmentLookup,
    MappingEnvironment,
    default_environment,
)
from envbind.errors import (
    DisallowedVariableError,
    EnvBindError,
    InvalidSpecificationError,
    ParseError,
    RequiredFieldError,
)
from envbind.tags import Env
from envbind.usage import describe, print_usage, usage_table

__version__ = "0.1.0"

__all__ = [
    # Binding
    "process",
    "must_process",
    "load",
    "gather",
    "VarInfo",
    # Tags
    "Env",
    # Checks
    "check_disallowed",
    # Usage
    "describe",
    "usage_table",
    "print_usage",
    # Capabilities
    "Decoder",
    "Setter",
    "TextUnmarshaler",
    "BinaryUnmarshaler",
    # Environment
    "EnvironmentLookup",
    "MappingEnvironment",
    "default_environment",
    # Errors
    "EnvBindError",
    "InvalidSpecificationError",
    "RequiredFieldError",
    "ParseError",
    "DisallowedVariableError",
]
