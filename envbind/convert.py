"""Conversion of raw environment values to declared field types.

:func:`convert` picks one strategy per target type, first match wins:

1. ``Optional[T]`` converts against ``T``.
2. Decoding capabilities (see :mod:`envbind.capabilities`).
3. Built-in scalars: str, bool, int, fixed-width numpy integers, float,
   numpy floats, durations, time zones, URLs, paths, enums and literals.
4. ``bytes`` / ``bytearray`` take the raw text's bytes.
5. Sequences split on ``,``; mappings split on ``,`` then ``:``.

Malformed literals raise ``ValueError``; unsupported type shapes raise
``TypeError``.
"""

from __future__ import annotations

import functools
import math
import re
from collections.abc import Callable, Mapping
from datetime import timedelta, tzinfo
from enum import Enum
from pathlib import PurePath
from typing import Any, Literal, get_args, get_origin
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import numpy as np
from pydantic import (
    AnyHttpUrl,
    AnyUrl,
    AnyWebsocketUrl,
    FileUrl,
    FtpUrl,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    WebsocketUrl,
)

from envbind.capabilities import (
    BinaryUnmarshaler,
    Decoder,
    Setter,
    TextUnmarshaler,
    capability_of,
)
from envbind.fields import new_instance, split_annotated, type_name, unwrap_optional

ITEM_SEPARATOR = ","
KEY_VALUE_SEPARATOR = ":"

URL_TYPES: tuple[type, ...] = (
    AnyUrl,
    AnyHttpUrl,
    HttpUrl,
    AnyWebsocketUrl,
    WebsocketUrl,
    FileUrl,
    FtpUrl,
)

TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

# microseconds per unit
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-3,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1e3,
    "s": 1e6,
    "m": 60e6,
    "h": 3600e6,
}
_DURATION_TERM = r"([0-9]+\.?[0-9]*|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_PATTERN = re.compile(rf"(?:{_DURATION_TERM})+", re.ASCII)
_DURATION_TERMS = re.compile(_DURATION_TERM, re.ASCII)

# Underscore grouping is only allowed after a base prefix.
_INT_PATTERN = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|[0-9]+)", re.ASCII
)
_FLOAT_PATTERN = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.ASCII | re.IGNORECASE,
)


def parse_bool(raw: str) -> bool:
    """Parse a canonical boolean literal.

    Examples
    --------
    >>> parse_bool("T")
    True
    >>> parse_bool("yes")
    Traceback (most recent call last):
    ...
    ValueError: invalid boolean literal 'yes'
    """
    if raw in TRUE_LITERALS:
        return True
    if raw in FALSE_LITERALS:
        return False
    raise ValueError(f"invalid boolean literal {raw!r}")


def parse_int(raw: str) -> int:
    """Parse a decimal or ``0x``/``0o``/``0b`` prefixed integer.

    Examples
    --------
    >>> parse_int("0x1F")
    31
    >>> parse_int(" 42")
    Traceback (most recent call last):
    ...
    ValueError: invalid integer literal ' 42'
    """
    if not _INT_PATTERN.fullmatch(raw):
        raise ValueError(f"invalid integer literal {raw!r}")
    digits = raw.lstrip("+-")
    if len(digits) > 1 and digits[0] == "0" and digits[1].isalpha():
        return int(raw, 0)
    return int(raw, 10)


def parse_float(raw: str) -> float:
    """Parse a decimal float literal, ``inf`` or ``nan``."""
    if not _FLOAT_PATTERN.fullmatch(raw):
        raise ValueError(f"invalid float literal {raw!r}")
    return float(raw)


def parse_duration(raw: str) -> timedelta:
    """Parse a duration literal such as ``300ms``, ``-1.5h`` or ``2h45m``.

    Examples
    --------
    >>> parse_duration("1m30s")
    datetime.timedelta(seconds=90)
    >>> parse_duration("0")
    datetime.timedelta(0)
    """
    text = raw
    sign = 1
    if text.startswith(("-", "+")):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not _DURATION_PATTERN.fullmatch(text):
        raise ValueError(f"invalid duration {raw!r}")
    total = sum(
        float(amount) * _DURATION_UNITS[unit]
        for amount, unit in _DURATION_TERMS.findall(text)
    )
    return timedelta(microseconds=sign * total)


def _parse_fixed_int(raw: str, tp: type[np.integer[Any]]) -> np.integer[Any]:
    value = parse_int(raw)
    info = np.iinfo(tp)
    if not info.min <= value <= info.max:
        raise ValueError(
            f"value {value} out of range for {tp.__name__} [{info.min}, {info.max}]"
        )
    return tp(value)


def _parse_fixed_float(raw: str, tp: type[np.floating[Any]]) -> np.floating[Any]:
    value = parse_float(raw)
    limit = float(np.finfo(tp).max)
    if math.isfinite(value) and abs(value) > limit:
        raise ValueError(f"value {raw} out of range for {tp.__name__}")
    return tp(value)


def _parse_zone(raw: str) -> ZoneInfo:
    try:
        return ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown time zone {raw!r}") from e


@functools.cache
def _url_adapter(tp: type) -> TypeAdapter[Any]:
    return TypeAdapter(tp)


def _parse_url(raw: str, tp: type) -> Any:
    try:
        return _url_adapter(tp).validate_python(raw)
    except ValidationError as e:
        raise ValueError(f"invalid URL {raw!r}: {e.errors()[0]['msg']}") from e


def _parse_enum(raw: str, tp: type[Enum]) -> Enum:
    for member in tp:
        if str(member.value) == raw:
            return member
    try:
        return tp[raw]
    except KeyError as e:
        choices = ", ".join(str(member.value) for member in tp)
        raise ValueError(f"{raw!r} is not one of {choices}") from e


def _parse_literal(raw: str, tp: Any) -> Any:
    for choice in get_args(tp):
        if str(choice) == raw:
            return choice
    choices = ", ".join(str(choice) for choice in get_args(tp))
    raise ValueError(f"{raw!r} is not one of {choices}")


_SCALARS: dict[type, Callable[[str], Any]] = {
    str: str,
    bool: parse_bool,
    int: parse_int,
    float: parse_float,
    timedelta: parse_duration,
    ZoneInfo: _parse_zone,
    tzinfo: _parse_zone,
}


def _invoke_capability(raw: str, tp: type, capability: type) -> Any:
    instance = new_instance(tp)
    try:
        if capability is Decoder:
            instance.env_decode(raw)
        elif capability is Setter:
            instance.env_set(raw)
        elif capability is TextUnmarshaler:
            instance.unmarshal_text(raw.encode("utf-8"))
        elif capability is BinaryUnmarshaler:
            instance.unmarshal_binary(raw.encode("utf-8"))
    except Exception as e:
        raise ValueError(f"{type_name(tp)}: {e}") from e
    return instance


def _convert_scalar(raw: str, tp: Any) -> Any:
    if get_origin(tp) is Literal:
        return _parse_literal(raw, tp)
    if not isinstance(tp, type):
        raise TypeError(f"unsupported type {type_name(tp)}")
    if tp in _SCALARS:
        return _SCALARS[tp](raw)
    if issubclass(tp, np.integer):
        return _parse_fixed_int(raw, tp)
    if issubclass(tp, np.floating):
        return _parse_fixed_float(raw, tp)
    if issubclass(tp, URL_TYPES):
        return _parse_url(raw, tp)
    if issubclass(tp, PurePath):
        return tp(raw)
    if issubclass(tp, Enum):
        return _parse_enum(raw, tp)
    if issubclass(tp, (bytes, bytearray)):
        return tp(raw.encode("utf-8"))
    raise TypeError(f"unsupported type {type_name(tp)}")


def _split_items(raw: str) -> list[str]:
    if not raw.strip():
        return []
    return raw.split(ITEM_SEPARATOR)


def _convert_sequence(raw: str, tp: Any) -> Any:
    origin = get_origin(tp) or tp
    args = get_args(tp)
    if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        raise TypeError(f"unsupported type {type_name(tp)}: only tuple[T, ...]")
    element = args[0] if args else str
    return origin(convert(item, element) for item in _split_items(raw))


def _convert_mapping(raw: str, tp: Any) -> dict[Any, Any]:
    args = get_args(tp)
    key_type, value_type = args if args else (str, str)
    result: dict[Any, Any] = {}
    for item in _split_items(raw):
        key, sep, value = item.partition(KEY_VALUE_SEPARATOR)
        if not sep:
            raise ValueError(f"invalid map item {item!r}: missing {KEY_VALUE_SEPARATOR!r}")
        result[convert(key, key_type)] = convert(value, value_type)
    return result


_SEQUENCES = (list, tuple, set, frozenset)


def convert(raw: str, annotation: Any) -> Any:
    """Convert a raw environment value to ``annotation``.

    Parameters
    ----------
    raw : str
        Raw value.
    annotation : Any
        Declared field type.

    Returns
    -------
    Any
        The typed value.

    Raises
    ------
    ValueError
        If ``raw`` is not a valid literal for the type, including range
        overflow and errors raised by decoding hooks.
    TypeError
        If no strategy supports the type.

    Examples
    --------
    >>> convert("a,b,c", list[str])
    ['a', 'b', 'c']
    >>> convert("key1:val1,key2:val2", dict[str, str])
    {'key1': 'val1', 'key2': 'val2'}
    >>> convert("8080", int | None)
    8080
    """
    tp, _ = split_annotated(annotation)
    tp, _ = unwrap_optional(tp)
    if get_origin(tp) is None and tp is Any:
        return raw
    capability = capability_of(tp)
    if capability is not None:
        return _invoke_capability(raw, tp, capability)
    origin = get_origin(tp) or tp
    if origin in _SEQUENCES:
        return _convert_sequence(raw, tp)
    if origin is dict or origin is Mapping:
        return _convert_mapping(raw, tp)
    return _convert_scalar(raw, tp)
