"""Per-field binding metadata.

Fields declare how they are bound with ``typing.Annotated``:

>>> from typing import Annotated
>>> from pydantic import BaseModel
>>> class ServerConfig(BaseModel):
...     port: Annotated[int, Env(key="PORT", default="8080")] = 0
...     token: Annotated[str, Env(required=True)] = ""
...     cache: Annotated[dict[str, str], Env(ignored=True)] = {}
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Env:
    """Binding options for a single field.

    Parameters
    ----------
    key : str | None
        Explicit key segment. Used verbatim; when unset the segment is
        derived from the field name.
    required : bool
        Whether a missing value (after the default) is an error.
    default : str | None
        Textual default, converted exactly like an environment value.
    ignored : bool
        Never look the field up and never report it.
    nested : bool
        Recurse into the field as a sub-structure even if its type carries
        a decoding capability.
    description : str | None
        Free text shown in usage listings.
    """

    key: str | None = None
    required: bool = False
    default: str | None = None
    ignored: bool = False
    nested: bool = False
    description: str | None = None


DEFAULT_ENV = Env()
