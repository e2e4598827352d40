"""Result type for explicit error handling.

Every public state-machine operation returns a Result instead of raising, so
callers driving a generation session can call operations speculatively and
branch on the outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, NoReturn, TypeVar, Union

T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Mapped type


class ResultError(Exception):
    """Raised when a Result is unwrapped on the wrong side."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Operation succeeded; ``value`` is usually the state the machine is now in."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ResultError(f"Expected an error, got Ok({self.value!r})")

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        """Replace the success value, e.g. turn a guard's Ok(None) into a state."""
        return Ok(fn(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Generic[E]):
    """Operation refused or failed; ``error`` says why."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ResultError(f"Expected a value, got Err({self.error})")

    def unwrap_err(self) -> E:
        return self.error

    def map(self, fn: Callable[[T], U]) -> "Err[E]":
        """No-op: errors pass through unchanged."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]


class ErrorKind(Enum):
    """Why a state-machine operation did not do what was asked."""

    INVALID_TRANSITION = "invalid_transition"
    PRECONDITION_FAILED = "precondition_failed"
    WRONG_STAGE = "wrong_stage"
    CONFIRMATION_REQUIRED = "confirmation_required"
    MISSING_CREDENTIALS = "missing_credentials"
    VALIDATION_OUTSTANDING = "validation_outstanding"
    RETRY_EXHAUSTED = "retry_exhausted"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class StageError:
    """Error from a guarded stage operation or the transition engine.

    Attributes:
        kind: Error category
        message: Human-readable description
        requires_confirmation: Understanding must be confirmed before retrying
        should_transition_to_error: Caller should divert to error handling
        diverted: The engine already moved the machine to ErrorHandling
        missing_credentials: Names of required credentials with no value
    """

    kind: ErrorKind
    message: str
    requires_confirmation: bool = False
    should_transition_to_error: bool = False
    diverted: bool = False
    missing_credentials: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "requires_confirmation": self.requires_confirmation,
            "should_transition_to_error": self.should_transition_to_error,
            "diverted": self.diverted,
            "missing_credentials": list(self.missing_credentials),
        }


@dataclass(frozen=True)
class ConfigError:
    """Error in configuration."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"Config error in '{self.field}': {self.message}"


# Exit codes
class ExitCode:
    """Exit codes for CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1

    CONFIG_ERROR = 10
    SCRIPT_ERROR = 11
    UNKNOWN_OPERATION = 12
    UNKNOWN_STATE = 13

