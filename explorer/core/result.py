"""
Result types for calls that may fall back.

Model-backed calls return Ok(value) or Err(failure) instead of raising, so
the fallback is visible at the call site:

    scope = (await self._infer_with_model(change_set)).or_else(
        lambda err: self.fallback_scope(change_set)
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))

    def or_else(self, fallback: Callable[[Exception], T]) -> T:
        return self.value

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: Exception

    @property
    def is_ok(self) -> bool:
        return False

    def map(self, fn: Callable) -> "Err":
        return self

    def or_else(self, fallback: Callable[[Exception], T]) -> T:
        return fallback(self.error)

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]
