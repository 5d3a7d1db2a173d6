"""Discriminated success/failure values for expected failure paths."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_error(self) -> Any:
        raise ValueError("unwrap_error() called on Ok result")

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise ValueError(f"unwrap() called on Err result: {self.error}") from self.error

    def unwrap_error(self) -> E:
        return self.error

    def map(self, fn: Callable[[Any], Any]) -> "Err[E]":
        return self


Result = Union[Ok[T], Err[E]]


def capture(fn: Callable[[], T], *, wrap: Callable[[Exception], E]) -> "Ok[T] | Err[E]":
    """Call `fn` and convert any exception into an `Err` via `wrap`."""

    try:
        return Ok(fn())
    except Exception as exc:
        return Err(wrap(exc))
