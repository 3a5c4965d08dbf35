from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar, Union

from .errors import ReservationError

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    ok: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    error: ReservationError
    ok: Literal[False] = False


Result = Union[Success[T], Failure]
