"""
Error taxonomy and result values for the scheduling engine.

Computation paths return a Result instead of raising; exceptions are
reserved for persistence failures the caller may want to retry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Classification of everything that can go wrong while scheduling."""

    INPUT_RANGE = "input_range"  # NaN/inf/out-of-range input, clamped
    MODEL_DOMAIN = "model_domain"  # R* or tau outside the curve's domain
    ALGORITHMIC = "algorithmic"  # log/exp/regression produced garbage
    PERSISTENCE = "persistence"  # file could not be read or written


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling engine."""

    kind: ErrorKind = ErrorKind.ALGORITHMIC


class PersistenceError(SchedulingError):
    """Raised when a JSON data file cannot be read or written."""

    kind = ErrorKind.PERSISTENCE


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a computation path: a value or a classified error."""

    value: T | None = None
    error: ErrorKind | None = None
    detail: str = ""

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, detail: str = "") -> "Result[T]":
        return cls(error=kind, detail=detail)

    def unwrap_or(self, default: T) -> T:
        """Return the value, or ``default`` when the path failed."""
        if self.error is not None or self.value is None:
            return default
        return self.value
