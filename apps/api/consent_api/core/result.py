"""Ok / Err result variants for best-effort operations."""

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")
D = TypeVar("D")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result variant."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap_or(self, default: D) -> T | D:  # noqa: ARG002
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    """Failed result variant carrying the exception that caused it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap_or(self, default: D) -> D:
        return default


Result: TypeAlias = Ok[T] | Err
