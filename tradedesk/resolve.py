"""Ordered source resolution.

A precedence chain ("try source A, then B, then C") is expressed as a tuple of
`Resolver` entries applied in order by `resolve_first`. Each resolver extracts a
candidate from the payload and a predicate decides whether it is usable.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT")


def _is_present(value: object) -> bool:
    return value is not None


@dataclass(frozen=True)
class Resolver(Generic[InputT, ResultT]):
    name: str
    extract: Callable[[InputT], "ResultT | None"]
    usable: Callable[[ResultT], bool] = _is_present

    def __call__(self, payload: InputT) -> "ResultT | None":
        value = self.extract(payload)
        if value is None or not self.usable(value):
            return None
        return value


@dataclass(frozen=True)
class Resolution(Generic[ResultT]):
    source: str
    value: ResultT


def resolve_first(
    resolvers: Iterable[Resolver[InputT, ResultT]],
    payload: InputT,
) -> Resolution[ResultT] | None:
    for resolver in resolvers:
        value = resolver(payload)
        if value is not None:
            return Resolution(source=resolver.name, value=value)
    return None
