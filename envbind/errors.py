"""Exceptions raised while binding environment variables."""

from __future__ import annotations

from collections.abc import Iterable


class EnvBindError(Exception):
    """Base exception for envbind errors."""

    pass


class InvalidSpecificationError(EnvBindError):
    """Exception raised when a destination cannot be bound.

    The destination must be a writable instance of a pydantic model or a
    dataclass, and its declared fields must produce valid keys.
    """

    pass


class RequiredFieldError(EnvBindError):
    """Exception raised when a required field has no value.

    Parameters
    ----------
    key
        Environment variable key that was looked up.
    field_name
        Name of the field that was being bound.

    Examples
    --------
    >>> str(RequiredFieldError("APP_NAME", "name"))
    'required key APP_NAME missing value'
    """

    def __init__(self, key: str, field_name: str) -> None:
        self.key = key
        self.field_name = field_name
        super().__init__(f"required key {key} missing value")


class ParseError(EnvBindError):
    """Exception raised when a value cannot be converted to a field's type.

    Parameters
    ----------
    key_name
        Environment variable key the value came from.
    field_name
        Name of the destination field.
    type_name
        Name of the field's declared type.
    value
        The raw value that failed to convert.
    err
        Underlying cause.

    Attributes
    ----------
    key_name : str
        Environment variable key.
    field_name : str
        Destination field name.
    type_name : str
        Declared type name.
    value : str
        Offending raw value.
    err : BaseException
        Underlying cause.

    Examples
    --------
    >>> err = ParseError("TEST_KEY", "test_field", "int", "abc", ValueError("bad"))
    >>> str(err)
    "assigning TEST_KEY to test_field: converting 'abc' to type int. details: bad"
    """

    def __init__(
        self,
        key_name: str,
        field_name: str,
        type_name: str,
        value: str,
        err: BaseException,
    ) -> None:
        self.key_name = key_name
        self.field_name = field_name
        self.type_name = type_name
        self.value = value
        self.err = err
        super().__init__(key_name, field_name, type_name, value, err)

    def __str__(self) -> str:
        """Return formatted error message."""
        return (
            f"assigning {self.key_name} to {self.field_name}: "
            f"converting '{self.value}' to type {self.type_name}. "
            f"details: {self.err}"
        )


class DisallowedVariableError(EnvBindError):
    """Exception raised when unknown variables share the binding prefix.

    Parameters
    ----------
    names
        Environment variable names that no declared field consumes.

    Examples
    --------
    >>> str(DisallowedVariableError(["APP_UNKNOWN"]))
    'unknown environment variables: APP_UNKNOWN'
    """

    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"unknown environment variables: {', '.join(self.names)}")
