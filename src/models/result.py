# src/models/result.py

"""Explicit success / failure values returned by collaborator calls."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(Enum):
    """Failure taxonomy shared by fetchers, stores and notifiers."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    BLOCKED = "blocked"
    PARSE = "parse"
    STORAGE = "storage"
    DELIVERY = "delivery"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome with a classified cause."""

    kind: ErrorKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


Result = Union[Ok[T], Err]
