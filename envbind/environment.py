"""Environment variable lookup.

The binder reads the environment only through :class:`EnvironmentLookup`:
an exact lookup and a full enumeration. :func:`lookup_value` adds the
nested fallback that lets a shallower variable satisfy a deeper key.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping
from typing import Protocol, runtime_checkable

from envbind.naming import NESTING_SEPARATOR

logger = logging.getLogger(__name__)


@runtime_checkable
class EnvironmentLookup(Protocol):
    """Read access to a variable store."""

    case_sensitive: bool

    def lookup(self, name: str) -> tuple[str, bool]:
        """Return ``(value, found)`` for an exact name match."""
        ...

    def items(self) -> Iterator[tuple[str, str]]:
        """Iterate over every ``(name, value)`` pair in the store."""
        ...


class MappingEnvironment:
    """Variable store backed by a mapping.

    Parameters
    ----------
    environ : Mapping[str, str] | None
        Variables to read. Defaults to :data:`os.environ`, read live.
    case_sensitive : bool | None
        Whether names match exactly. Defaults to the platform convention:
        case-insensitive on Windows, case-sensitive elsewhere.

    Examples
    --------
    >>> env = MappingEnvironment({"Path": "/bin"}, case_sensitive=False)
    >>> env.lookup("PATH")
    ('/bin', True)
    >>> MappingEnvironment({"Path": "/bin"}, case_sensitive=True).lookup("PATH")
    ('', False)
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        case_sensitive: bool | None = None,
    ) -> None:
        self._environ = os.environ if environ is None else environ
        self.case_sensitive = (
            os.name != "nt" if case_sensitive is None else case_sensitive
        )

    def lookup(self, name: str) -> tuple[str, bool]:
        """Return ``(value, found)`` for ``name``."""
        if name in self._environ:
            return self._environ[name], True
        if not self.case_sensitive:
            folded = name.casefold()
            for key, value in self._environ.items():
                if key.casefold() == folded:
                    return value, True
        return "", False

    def items(self) -> Iterator[tuple[str, str]]:
        """Iterate over every ``(name, value)`` pair."""
        yield from list(self._environ.items())


def default_environment() -> MappingEnvironment:
    """Return the process environment with the platform's case rules."""
    return MappingEnvironment()


def as_environment(
    environ: Mapping[str, str] | EnvironmentLookup | None,
) -> EnvironmentLookup:
    """Normalise the ``environ`` argument accepted by public entry points.

    Plain mappings are read case-sensitively; ``None`` selects the process
    environment.
    """
    if environ is None:
        return default_environment()
    if isinstance(environ, EnvironmentLookup):
        return environ
    return MappingEnvironment(environ, case_sensitive=True)


def fallback_keys(key: str) -> list[str]:
    """List the nested fallback candidates for ``key``, longest first.

    Trailing ``__`` segments are dropped one at a time. The key itself and
    the lone leading segment are not candidates.

    Examples
    --------
    >>> fallback_keys("APP__DB__PRIMARY__HOST")
    ['APP__DB__PRIMARY', 'APP__DB']
    >>> fallback_keys("APP_DB__HOST")
    []
    >>> fallback_keys("APP_NAME")
    []
    """
    if NESTING_SEPARATOR not in key:
        return []
    parts = key.split(NESTING_SEPARATOR)
    return [
        NESTING_SEPARATOR.join(parts[:end]) for end in range(len(parts) - 1, 1, -1)
    ]


def lookup_value(env: EnvironmentLookup, key: str) -> tuple[str, bool, str]:
    """Resolve ``key`` exactly, then through its nested fallback keys.

    Parameters
    ----------
    env : EnvironmentLookup
        Variable store.
    key : str
        Canonical key.

    Returns
    -------
    tuple[str, bool, str]
        Value, whether it was found, and the name that matched (empty when
        nothing matched).
    """
    value, found = env.lookup(key)
    if found:
        return value, True, key
    for candidate in fallback_keys(key):
        value, found = env.lookup(candidate)
        if found:
            logger.debug("key %s satisfied by fallback %s", key, candidate)
            return value, True, candidate
    return "", False, ""
