"""Decoding hooks a field type can implement.

A type implementing any of these protocols is converted by allocating a
zero-valued instance and calling the hook with the raw value. When a type
implements several, the first in this order wins: :class:`Decoder`,
:class:`Setter`, :class:`TextUnmarshaler`, :class:`BinaryUnmarshaler`.

Examples
--------
>>> class Secret:
...     def __init__(self) -> None:
...         self.value = ""
...     def env_decode(self, value: str) -> None:
...         self.value = value.strip()
>>> issubclass(Secret, Decoder)
True
"""

from __future__ import annotations

from typing import Protocol, get_origin, runtime_checkable


@runtime_checkable
class Decoder(Protocol):
    """Type that decodes itself from a string."""

    def env_decode(self, value: str) -> None: ...


@runtime_checkable
class Setter(Protocol):
    """Type that is set from a string."""

    def env_set(self, value: str) -> None: ...


@runtime_checkable
class TextUnmarshaler(Protocol):
    """Type populated from the raw value's bytes read as text."""

    def unmarshal_text(self, text: bytes) -> None: ...


@runtime_checkable
class BinaryUnmarshaler(Protocol):
    """Type populated from the raw value's bytes as opaque data."""

    def unmarshal_binary(self, data: bytes) -> None: ...


CAPABILITY_ORDER: tuple[type, ...] = (
    Decoder,
    Setter,
    TextUnmarshaler,
    BinaryUnmarshaler,
)


def capability_of(tp: object) -> type | None:
    """Return the highest-priority capability protocol ``tp`` implements.

    Parameters
    ----------
    tp : object
        Candidate field type.

    Returns
    -------
    type | None
        One of :data:`CAPABILITY_ORDER`, or None for plain types.
    """
    if get_origin(tp) is not None or not isinstance(tp, type):
        return None
    for protocol in CAPABILITY_ORDER:
        if issubclass(tp, protocol):
            return protocol
    return None
