"""Detection of environment variables no declared field consumes."""

from __future__ import annotations

import logging
from typing import Any

from envbind.binder import Environ, gather
from envbind.environment import as_environment
from envbind.errors import DisallowedVariableError
from envbind.naming import WORD_SEPARATOR

logger = logging.getLogger(__name__)


def consulted_keys(prefix: str, spec: Any) -> set[str]:
    """Return every key a bind of ``spec`` could read, fallbacks included."""
    keys: set[str] = set()
    for info in gather(prefix, spec):
        keys.add(info.key)
        keys.update(info.fallback_keys)
    return keys


def check_disallowed(prefix: str, spec: Any, *, environ: Environ = None) -> None:
    """Fail if variables under ``prefix`` are not consumed by ``spec``.

    Parameters
    ----------
    prefix : str
        Key prefix. Variables named ``PREFIX_...`` are checked; with an empty
        prefix every variable is checked.
    spec : Any
        Structure instance or class; only its declared shape is used.
    environ : Mapping[str, str] | EnvironmentLookup | None
        Variable source.

    Raises
    ------
    DisallowedVariableError
        Listing every unconsumed variable, sorted by name.
    InvalidSpecificationError
        If ``spec`` is not a structure.

    Examples
    --------
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class App:
    ...     name: str = ""
    >>> check_disallowed("APP", App, environ={"APP_NAME": "x", "APP_UNKNOWN": "y"})
    Traceback (most recent call last):
    ...
    envbind.errors.DisallowedVariableError: unknown environment variables: APP_UNKNOWN
    """
    env = as_environment(environ)
    keys = consulted_keys(prefix, spec)
    start = f"{prefix}{WORD_SEPARATOR}" if prefix else ""
    if not env.case_sensitive:
        keys = {key.casefold() for key in keys}
        start = start.casefold()

    unknown: list[str] = []
    for name, _ in env.items():
        candidate = name if env.case_sensitive else name.casefold()
        if not candidate.startswith(start):
            continue
        if candidate not in keys:
            unknown.append(name)

    if unknown:
        logger.debug("%d unconsumed variables under prefix %r", len(unknown), prefix)
        raise DisallowedVariableError(sorted(unknown))
