"""Result type for component boundaries.

Builders and handlers return ``Result[T, ProtocolError]`` instead of raising,
so the protocol layer decides once how a failure is rendered. Construct with
Ok()/Err(); inspect with is_ok()/is_err(); transform with map()/map_err().
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar, cast

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")
F = TypeVar("F")


class Result(Generic[T, E]):
    """Success (Ok) or failure (Err) of a computation.

    Example:
        >>> Ok(2).map(lambda x: x * 10).unwrap()
        20
        >>> Err("missing").unwrap_or(0)
        0
    """

    __slots__ = ("_value", "_is_ok")
    __match_args__ = ("_value",)

    def __init__(self, value: T | E, is_ok: bool) -> None:
        self._value: T | E = value
        self._is_ok: bool = is_ok

    def is_ok(self) -> bool:
        return self._is_ok

    def is_err(self) -> bool:
        return not self._is_ok

    # ─────────────────────────────────────────────────────────────────
    # Extraction
    # ─────────────────────────────────────────────────────────────────

    def unwrap(self) -> T:
        """Ok value, or RuntimeError on Err."""
        if self._is_ok:
            return cast(T, self._value)
        raise RuntimeError(f"Called unwrap() on Err value: {self._value}")

    def unwrap_err(self) -> E:
        """Err value, or RuntimeError on Ok."""
        if not self._is_ok:
            return cast(E, self._value)
        raise RuntimeError(f"Called unwrap_err() on Ok value: {self._value}")

    def unwrap_or(self, default: T) -> T:
        return cast(T, self._value) if self._is_ok else default

    def unwrap_or_raise(self) -> T:
        """Ok value, or raise the Err value if it is an exception."""
        if self._is_ok:
            return cast(T, self._value)
        if isinstance(self._value, BaseException):
            raise self._value
        raise RuntimeError(str(self._value))

    def ok(self) -> T | None:
        return cast(T, self._value) if self._is_ok else None

    def err(self) -> E | None:
        return None if self._is_ok else cast(E, self._value)

    # ─────────────────────────────────────────────────────────────────
    # Composition
    # ─────────────────────────────────────────────────────────────────

    def map(self, f: Callable[[T], U]) -> Result[U, E]:
        return Ok(f(cast(T, self._value))) if self._is_ok else Err(cast(E, self._value))

    def map_err(self, f: Callable[[E], F]) -> Result[T, F]:
        return Err(f(cast(E, self._value))) if not self._is_ok else Ok(cast(T, self._value))

    # ─────────────────────────────────────────────────────────────────
    # Dunder
    # ─────────────────────────────────────────────────────────────────

    def __bool__(self) -> bool:
        return self._is_ok

    def __repr__(self) -> str:
        return f"{'Ok' if self._is_ok else 'Err'}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        return self._is_ok == other._is_ok and self._value == other._value

    def __hash__(self) -> int:
        return hash((self._is_ok, self._value))


def Ok(value: T) -> Result[T, E]:  # noqa: N802
    return Result(value, is_ok=True)


def Err(error: E) -> Result[T, E]:  # noqa: N802
    return Result(error, is_ok=False)
