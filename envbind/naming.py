"""Environment variable key derivation.

Keys are built from a prefix and one segment per field. Top-level fields
join the prefix with a single underscore; fields reached through a nested
structure join their container's key with a double underscore, so
``APP_DB__HOST`` reads as field ``host`` of container ``db`` under prefix
``APP``.
"""

from __future__ import annotations

from envbind.errors import InvalidSpecificationError
from envbind.tags import Env

WORD_SEPARATOR = "_"
NESTING_SEPARATOR = "__"


def to_snake_case(name: str) -> str:
    """Insert word separators into an identifier without changing its case.

    A separator goes before every lower-to-upper and letter-to-digit
    transition. A run of capitals is kept together and only split before
    its last capital when that capital starts a lower-case word.

    Parameters
    ----------
    name : str
        Field identifier.

    Returns
    -------
    str
        Identifier with ``_`` at word boundaries.

    Examples
    --------
    >>> to_snake_case("TestField")
    'Test_Field'
    >>> to_snake_case("XMLHttpRequest")
    'XML_Http_Request'
    >>> to_snake_case("UserID")
    'User_ID'
    >>> to_snake_case("retry_count")
    'retry_count'
    """
    chars: list[str] = []
    for i, char in enumerate(name):
        if i > 0:
            prev = name[i - 1]
            nxt = name[i + 1] if i + 1 < len(name) else ""
            if (
                (char.isupper() and prev.islower())
                or (char.isdigit() and prev.isalpha())
                or (char.isupper() and prev.isupper() and nxt.islower())
            ):
                chars.append(WORD_SEPARATOR)
        chars.append(char)
    return "".join(chars)


def key_segment(name: str, tag: Env) -> str:
    """Return the key segment for a field.

    Parameters
    ----------
    name : str
        Field name.
    tag : Env
        Field binding options.

    Returns
    -------
    str
        The tag's key verbatim, or the upper-cased snake case field name
        with leading and trailing underscores removed.

    Raises
    ------
    InvalidSpecificationError
        If the segment is empty, contains the nesting separator, or starts
        or ends with the word separator.

    Examples
    --------
    >>> key_segment("custom_decoder", Env())
    'CUSTOM_DECODER'
    >>> key_segment("host", Env(key="DB_HOST"))
    'DB_HOST'
    >>> key_segment("type_", Env())
    'TYPE'
    """
    if tag.key:
        segment = tag.key
    else:
        segment = to_snake_case(name).upper().strip(WORD_SEPARATOR)
    if not segment:
        raise InvalidSpecificationError(f"field {name!r} has an empty key segment")
    if NESTING_SEPARATOR in segment:
        raise InvalidSpecificationError(
            f"key segment {segment!r} for field {name!r} contains the nesting "
            f"separator {NESTING_SEPARATOR!r}"
        )
    # an edge underscore would merge with a neighbouring separator
    if segment.startswith(WORD_SEPARATOR) or segment.endswith(WORD_SEPARATOR):
        raise InvalidSpecificationError(
            f"key segment {segment!r} for field {name!r} starts or ends with "
            f"{WORD_SEPARATOR!r}"
        )
    return segment


def join_key(prefix: str, segment: str, separator: str = WORD_SEPARATOR) -> str:
    """Join a prefix and a key segment.

    Examples
    --------
    >>> join_key("", "NAME")
    'NAME'
    >>> join_key("APP", "NAME")
    'APP_NAME'
    >>> join_key("APP_DB", "HOST", NESTING_SEPARATOR)
    'APP_DB__HOST'
    """
    if not prefix:
        return segment
    return f"{prefix}{separator}{segment}"
