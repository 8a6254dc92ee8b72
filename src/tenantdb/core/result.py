"""Typed error values returned by command and query handlers.

Handlers never raise for expected failure modes. They return an
``Outcome`` carrying either a value or one or more ``Error`` entries, so
callers can tell operator-action failures (validation, conflict) from
lookups that missed (not found) and from failures needing investigation
(unexpected).

Example:
    outcome = await handler.handle(command)
    if outcome.is_error:
        return error_response(outcome.first_error)
    tenant = outcome.value
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class ErrorType(str, Enum):
    """Classification of a handler error."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorType.VALIDATION: 400,
    ErrorType.CONFLICT: 409,
    ErrorType.NOT_FOUND: 404,
    ErrorType.UNEXPECTED: 500,
}


@dataclass(frozen=True, slots=True)
class Error:
    """A single typed error.

    Attributes:
        code: Stable machine-readable code, e.g. ``Tenant.AlreadyExists``
        description: Human-readable description
        type: Error classification
        metadata: Extra structured detail (paths already written, field names)
    """

    code: str
    description: str
    type: ErrorType
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def validation(cls, code: str, description: str, **metadata: Any) -> "Error":
        return cls(code, description, ErrorType.VALIDATION, metadata)

    @classmethod
    def conflict(cls, code: str, description: str, **metadata: Any) -> "Error":
        return cls(code, description, ErrorType.CONFLICT, metadata)

    @classmethod
    def not_found(cls, code: str, description: str, **metadata: Any) -> "Error":
        return cls(code, description, ErrorType.NOT_FOUND, metadata)

    @classmethod
    def unexpected(cls, code: str, description: str, **metadata: Any) -> "Error":
        return cls(code, description, ErrorType.UNEXPECTED, metadata)


class Outcome(Generic[T]):
    """Either a value or a non-empty list of errors."""

    __slots__ = ("_value", "_errors")

    def __init__(self, value: T | None = None, errors: Iterable[Error] | None = None):
        self._value = value
        self._errors = list(errors or [])

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, *errors: Error) -> "Outcome[T]":
        if not errors:
            raise ValueError("A failed outcome needs at least one error")
        return cls(errors=errors)

    @property
    def is_error(self) -> bool:
        return bool(self._errors)

    @property
    def errors(self) -> list[Error]:
        return list(self._errors)

    @property
    def first_error(self) -> Error:
        if not self._errors:
            raise ValueError("Outcome has no errors")
        return self._errors[0]

    @property
    def value(self) -> T:
        """The success value.

        Raises:
            ValueError: If the outcome holds errors
        """
        if self._errors:
            raise ValueError(f"Outcome holds errors: {self._errors[0].code}")
        return self._value  # type: ignore[return-value]

    def map(self, fn: Callable[[T], U]) -> "Outcome[U]":
        """Transform the value, passing errors through unchanged."""
        if self._errors:
            return Outcome(errors=self._errors)
        return Outcome.ok(fn(self._value))  # type: ignore[arg-type]

    def __repr__(self) -> str:
        if self._errors:
            return f"<Outcome errors={[e.code for e in self._errors]}>"
        return f"<Outcome value={self._value!r}>"
