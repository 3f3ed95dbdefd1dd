# core/ftypes.py
# Maybe - результат поиска урока или позиции корзины.
# Either - результат проверки покупателя и операций с корзиной; Left несёт StoreError.

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
L = TypeVar("L")
R = TypeVar("R")


@dataclass(frozen=True)
class Maybe(Generic[T]):
    value: Optional[T] = None

    @staticmethod
    def of(value: Optional[T]) -> "Maybe[T]":
        return Maybe(value)

    @staticmethod
    def some(value: T) -> "Maybe[T]":
        if value is None:
            raise ValueError("Maybe.some(None)")
        return Maybe(value)

    @staticmethod
    def nothing() -> "Maybe[T]":
        return Maybe()

    @staticmethod
    def first(items: Iterable[T], predicate: Callable[[T], bool]) -> "Maybe[T]":
        """Первый подходящий элемент или Nothing"""
        return Maybe(next((x for x in items if predicate(x)), None))

    def is_some(self) -> bool:
        return self.value is not None

    def is_none(self) -> bool:
        return self.value is None

    def map(self, fn: Callable[[T], U]) -> "Maybe[U]":
        return Maybe(fn(self.value)) if self.is_some() else Maybe()

    def bind(self, fn: Callable[[T], "Maybe[U]"]) -> "Maybe[U]":
        return fn(self.value) if self.is_some() else Maybe()

    def get_or_else(self, default: U) -> T | U:
        return default if self.value is None else self.value

    def to_either(self, error: L) -> "Either[L, T]":
        return Either.left(error) if self.value is None else Either.right(self.value)

    def __repr__(self) -> str:
        return "Nothing" if self.value is None else f"Some({self.value!r})"


@dataclass(frozen=True)
class Either(Generic[L, R]):
    is_left: bool
    value: Union[L, R]

    @staticmethod
    def left(error: L) -> "Either[L, R]":
        return Either(True, error)

    @staticmethod
    def right(value: R) -> "Either[L, R]":
        return Either(False, value)

    @property
    def is_right(self) -> bool:
        return not self.is_left

    def fold(self, on_left: Callable[[L], U], on_right: Callable[[R], U]) -> U:
        return on_left(self.value) if self.is_left else on_right(self.value)  # type: ignore[arg-type]

    def map(self, fn: Callable[[R], U]) -> "Either[L, U]":
        return self.fold(lambda _: self, lambda v: Either.right(fn(v)))  # type: ignore[return-value]

    def bind(self, fn: Callable[[R], "Either[L, U]"]) -> "Either[L, U]":
        return self.fold(lambda _: self, fn)  # type: ignore[return-value]

    def get_or_else(self, default: U) -> R | U:
        return self.fold(lambda _: default, lambda v: v)

    def get_or_raise(self) -> R:
        """Значение Right; из Left поднимается хранящееся в нём исключение"""
        if self.is_right:
            return self.value  # type: ignore[return-value]
        if isinstance(self.value, BaseException):
            raise self.value
        raise ValueError(self.value)

    def __repr__(self) -> str:
        return f"Left({self.value!r})" if self.is_left else f"Right({self.value!r})"
