"""Struct binding: walk a structure's fields and fill them from the environment.

Each leaf field resolves a key (see :mod:`envbind.naming`), looks the key
up with its nested fallback (see :mod:`envbind.environment`), falls back to
the tag default, and converts the text (see :mod:`envbind.convert`). Fields
whose type is a structure are walked recursively with the container's key
as the new prefix. Assignments are collected during the walk and written
only once every field has bound, so the first error leaves the destination
untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from envbind.convert import convert
from envbind.environment import (
    EnvironmentLookup,
    as_environment,
    fallback_keys,
    lookup_value,
)
from envbind.errors import (
    EnvBindError,
    InvalidSpecificationError,
    ParseError,
    RequiredFieldError,
)
from envbind.fields import (
    FieldSpec,
    check_destination,
    declared_fields,
    is_frozen,
    new_instance,
    struct_class,
    type_name,
)
from envbind.naming import NESTING_SEPARATOR, WORD_SEPARATOR, join_key, key_segment

logger = logging.getLogger(__name__)

T = TypeVar("T")

type Environ = Mapping[str, str] | EnvironmentLookup | None

# (object, attribute, value) written once the whole walk has succeeded
type Assignment = tuple[Any, str, Any]


@dataclass(frozen=True, slots=True)
class VarInfo:
    """One environment variable a structure consumes.

    Attributes
    ----------
    field : str
        Dotted path of the field from the root structure.
    key : str
        Canonical environment variable key.
    fallback_keys : tuple[str, ...]
        Shorter keys that also satisfy the field, longest first.
    annotation : Any
        Declared field type.
    required : bool
        Whether a value must be present.
    default : str | None
        Textual default.
    description : str | None
        Field description.
    """

    field: str
    key: str
    fallback_keys: tuple[str, ...]
    annotation: Any
    required: bool
    default: str | None
    description: str | None

    @property
    def type_name(self) -> str:
        """Readable name of the declared type."""
        return type_name(self.annotation)


def _field_key(prefix: str, field: FieldSpec, separator: str) -> str:
    return join_key(prefix, key_segment(field.name, field.tag), separator)


def _enter(cls: type, path: tuple[type, ...]) -> tuple[type, ...]:
    if cls in path:
        raise InvalidSpecificationError(
            f"structure {cls.__name__} contains itself; recursive nesting "
            "cannot be bound"
        )
    return (*path, cls)


def _bind_leaf(
    target: Any,
    field: FieldSpec,
    key: str,
    env: EnvironmentLookup,
    staged: list[Assignment],
) -> None:
    value, found, source = lookup_value(env, key)
    if not found and field.tag.default is not None:
        value, found, source = field.tag.default, True, "default"
    if not found:
        if field.tag.required:
            raise RequiredFieldError(key, field.name)
        logger.debug("no value for %s, leaving %s unchanged", key, field.name)
        return
    try:
        converted = convert(value, field.annotation)
    except (ValueError, TypeError) as e:
        raise ParseError(key, field.name, type_name(field.annotation), value, e) from e
    staged.append((target, field.name, converted))
    logger.debug("bound %s from %s", field.name, source)


def _bind_struct(
    target: Any,
    prefix: str,
    separator: str,
    env: EnvironmentLookup,
    path: tuple[type, ...],
    staged: list[Assignment],
) -> None:
    cls = type(target)
    path = _enter(cls, path)
    for field in declared_fields(cls):
        if field.tag.ignored:
            continue
        key = _field_key(prefix, field, separator)
        if field.struct_type is None:
            _bind_leaf(target, field, key, env, staged)
            continue
        if is_frozen(field.struct_type):
            raise InvalidSpecificationError(
                f"nested structure {field.struct_type.__name__} of field "
                f"{field.name!r} is frozen and cannot be assigned"
            )
        child = getattr(target, field.name, None)
        if child is None:
            child = new_instance(field.struct_type)
            _bind_struct(child, key, NESTING_SEPARATOR, env, path, staged)
            staged.append((target, field.name, child))
        else:
            _bind_struct(child, key, NESTING_SEPARATOR, env, path, staged)


def process(prefix: str, spec: Any, *, environ: Environ = None) -> None:
    """Populate ``spec`` in place from environment variables.

    Parameters
    ----------
    prefix : str
        Key prefix; top-level keys are ``PREFIX_SEGMENT``. May be empty.
    spec : Any
        Writable pydantic model or dataclass instance.
    environ : Mapping[str, str] | EnvironmentLookup | None
        Variable source. Plain mappings are read case-sensitively; None
        reads the process environment with the platform's case rules.

    Raises
    ------
    InvalidSpecificationError
        If ``spec`` cannot be bound.
    RequiredFieldError
        If a required field has no value and no default.
    ParseError
        If a value cannot be converted to its field's type.

    Examples
    --------
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Server:
    ...     port: int = 0
    >>> server = Server()
    >>> process("APP", server, environ={"APP_PORT": "8080"})
    >>> server.port
    8080
    """
    check_destination(spec)
    staged: list[Assignment] = []
    _bind_struct(spec, prefix, WORD_SEPARATOR, as_environment(environ), (), staged)
    for target, name, value in staged:
        setattr(target, name, value)


def must_process(prefix: str, spec: Any, *, environ: Environ = None) -> None:
    """Like :func:`process`, but exit the interpreter on any binding error.

    Raises
    ------
    SystemExit
        With the error message, if binding fails.
    """
    try:
        process(prefix, spec, environ=environ)
    except EnvBindError as e:
        logger.critical("environment binding failed: %s", e)
        raise SystemExit(str(e)) from e


def load(cls: type[T], prefix: str = "", *, environ: Environ = None) -> T:
    """Allocate a zero-valued ``cls`` instance and bind it.

    Pydantic models are allocated with ``model_construct``, so no
    validation runs; dataclasses receive their declared defaults without
    calling ``__init__``.

    Parameters
    ----------
    cls : type[T]
        Pydantic model or dataclass class.
    prefix : str
        Key prefix.
    environ : Mapping[str, str] | EnvironmentLookup | None
        Variable source.

    Returns
    -------
    T
        The bound instance.
    """
    if not isinstance(cls, type):
        raise InvalidSpecificationError(
            f"load expects a structure class, got {type(cls).__name__} instance"
        )
    struct_class(cls)
    instance = new_instance(cls)
    process(prefix, instance, environ=environ)
    return instance


def _gather(
    cls: type,
    prefix: str,
    separator: str,
    parent: str,
    path: tuple[type, ...],
    out: list[VarInfo],
) -> None:
    path = _enter(cls, path)
    for field in declared_fields(cls):
        if field.tag.ignored:
            continue
        key = _field_key(prefix, field, separator)
        dotted = f"{parent}.{field.name}" if parent else field.name
        if field.struct_type is not None:
            _gather(field.struct_type, key, NESTING_SEPARATOR, dotted, path, out)
            continue
        out.append(
            VarInfo(
                field=dotted,
                key=key,
                fallback_keys=tuple(fallback_keys(key)),
                annotation=field.annotation,
                required=field.tag.required,
                default=field.tag.default,
                description=field.description,
            )
        )


def gather(prefix: str, spec: Any) -> list[VarInfo]:
    """List the variables a structure consumes without reading any.

    Parameters
    ----------
    prefix : str
        Key prefix.
    spec : Any
        Structure instance or class.

    Returns
    -------
    list[VarInfo]
        One entry per non-ignored leaf field, in declaration order.

    Examples
    --------
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class App:
    ...     name: str = ""
    ...     log_level: str = "INFO"
    >>> [info.key for info in gather("APP", App)]
    ['APP_NAME', 'APP_LOG_LEVEL']
    """
    out: list[VarInfo] = []
    _gather(struct_class(spec), prefix, WORD_SEPARATOR, "", (), out)
    return out
