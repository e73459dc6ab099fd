"""Declared field tables for pydantic models and dataclasses.

The table for a structure type is built once and cached by type identity.
It holds only the declared shape; keys and values are computed per call.
"""

from __future__ import annotations

import dataclasses
import functools
import types
from dataclasses import dataclass
from typing import Annotated, Any, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel

from envbind.capabilities import capability_of
from envbind.errors import InvalidSpecificationError
from envbind.tags import DEFAULT_ENV, Env


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Declared shape of one structure field.

    Attributes
    ----------
    name : str
        Attribute name.
    annotation : Any
        Declared type with ``Annotated`` metadata removed.
    tag : Env
        Binding options.
    description : str | None
        Text for usage listings.
    struct_type : type | None
        Structure type to recurse into, or None for leaf fields.
    """

    name: str
    annotation: Any
    tag: Env
    description: str | None
    struct_type: type | None

    @property
    def is_nested(self) -> bool:
        """Whether the field is a sub-structure rather than a leaf."""
        return self.struct_type is not None


def split_annotated(tp: Any) -> tuple[Any, tuple[Any, ...]]:
    """Split ``Annotated[T, *meta]`` into ``(T, meta)``."""
    if get_origin(tp) is Annotated:
        args = get_args(tp)
        return args[0], tuple(args[1:])
    return tp, ()


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Return the inner type of ``Optional[T]`` and whether it was optional.

    Examples
    --------
    >>> unwrap_optional(int | None)
    (<class 'int'>, True)
    >>> unwrap_optional(int)
    (<class 'int'>, False)
    """
    tp, _ = split_annotated(tp)
    if get_origin(tp) in (Union, types.UnionType):
        args = get_args(tp)
        members = [arg for arg in args if arg is not type(None)]
        if len(members) == 1 and len(members) < len(args):
            return split_annotated(members[0])[0], True
    return tp, False


def type_name(tp: Any) -> str:
    """Return a readable name for a declared type.

    Examples
    --------
    >>> type_name(int)
    'int'
    >>> type_name(dict[str, int])
    'dict[str, int]'
    """
    tp, _ = split_annotated(tp)
    if get_origin(tp) is None and isinstance(tp, type):
        return tp.__name__
    return str(tp).replace("typing.", "")


def is_pydantic_model(tp: Any) -> bool:
    """Whether ``tp`` is a pydantic model class."""
    return isinstance(tp, type) and issubclass(tp, BaseModel)


def is_struct_type(tp: Any) -> bool:
    """Whether ``tp`` is a structure class (pydantic model or dataclass)."""
    return isinstance(tp, type) and (
        is_pydantic_model(tp) or dataclasses.is_dataclass(tp)
    )


def is_frozen(tp: type) -> bool:
    """Whether instances of the structure class reject attribute assignment."""
    if is_pydantic_model(tp):
        return bool(tp.model_config.get("frozen", False))
    params = getattr(tp, "__dataclass_params__", None)
    return bool(params is not None and params.frozen)


def check_destination(spec: Any) -> None:
    """Validate that ``spec`` is a writable structure instance.

    Raises
    ------
    InvalidSpecificationError
        If ``spec`` is None, a class, not a structure, or frozen.
    """
    if spec is None:
        raise InvalidSpecificationError("specification must not be None")
    if isinstance(spec, type):
        raise InvalidSpecificationError(
            f"specification must be an instance, got class {spec.__name__}"
        )
    if not is_struct_type(type(spec)):
        raise InvalidSpecificationError(
            "specification must be a pydantic model or dataclass instance, "
            f"got {type(spec).__name__}"
        )
    if is_frozen(type(spec)):
        raise InvalidSpecificationError(
            f"specification {type(spec).__name__} is frozen and cannot be assigned"
        )


def struct_class(spec: Any) -> type:
    """Return the structure class of an instance or class ``spec``.

    Raises
    ------
    InvalidSpecificationError
        If ``spec`` is neither a structure instance nor a structure class.
    """
    if spec is None:
        raise InvalidSpecificationError("specification must not be None")
    cls = spec if isinstance(spec, type) else type(spec)
    if not is_struct_type(cls):
        raise InvalidSpecificationError(
            "specification must be a pydantic model or dataclass, "
            f"got {cls.__name__}"
        )
    return cls


def new_instance(cls: type) -> Any:
    """Allocate a zero-valued instance of ``cls``.

    Pydantic models are built with ``model_construct`` and dataclasses get
    their declared defaults without running ``__init__``; fields with no
    default stay unset. Other classes are called with no arguments.
    """
    if is_pydantic_model(cls):
        return cls.model_construct()
    if dataclasses.is_dataclass(cls):
        instance = cls.__new__(cls)
        for field in dataclasses.fields(cls):
            if field.default is not dataclasses.MISSING:
                object.__setattr__(instance, field.name, field.default)
            elif field.default_factory is not dataclasses.MISSING:
                object.__setattr__(instance, field.name, field.default_factory())
        return instance
    return cls()


def _raw_fields(cls: type) -> list[tuple[str, Any, tuple[Any, ...], str | None]]:
    if is_pydantic_model(cls):
        return [
            (name, info.annotation, tuple(info.metadata), info.description)
            for name, info in cls.model_fields.items()
        ]
    try:
        hints = get_type_hints(cls, include_extras=True)
    except NameError as e:
        raise InvalidSpecificationError(
            f"cannot resolve field annotations of {cls.__name__}: {e}"
        ) from e
    raw: list[tuple[str, Any, tuple[Any, ...], str | None]] = []
    for field in dataclasses.fields(cls):
        annotation, metadata = split_annotated(hints.get(field.name, field.type))
        raw.append((field.name, annotation, metadata, field.metadata.get("description")))
    return raw


@functools.cache
def declared_fields(cls: type) -> tuple[FieldSpec, ...]:
    """Return the visible fields of a structure class in declaration order.

    Parameters
    ----------
    cls : type
        Pydantic model or dataclass.

    Returns
    -------
    tuple[FieldSpec, ...]
        One entry per public field.

    Raises
    ------
    InvalidSpecificationError
        If annotations cannot be resolved or a non-structure field is
        marked nested.
    """
    specs: list[FieldSpec] = []
    for name, annotation, metadata, description in _raw_fields(cls):
        if name.startswith("_"):
            continue
        tag = next((m for m in metadata if isinstance(m, Env)), DEFAULT_ENV)
        inner, _ = unwrap_optional(annotation)
        struct_type: type | None = None
        if is_struct_type(inner) and (tag.nested or capability_of(inner) is None):
            struct_type = inner
        elif tag.nested:
            raise InvalidSpecificationError(
                f"field {name!r} of {cls.__name__} is marked nested but "
                f"{type_name(annotation)} is not a structure"
            )
        specs.append(
            FieldSpec(
                name=name,
                annotation=annotation,
                tag=tag,
                description=tag.description or description,
                struct_type=struct_type,
            )
        )
    return tuple(specs)
