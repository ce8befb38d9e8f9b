"""Lazily populated tables of per-bucket collectors."""

from __future__ import annotations

import bisect
from typing import Callable, Generic, Hashable, Iterator, Sequence, TypeVar

T = TypeVar("T")


class TableByRange(Generic[T]):
    """Collectors for the ranges delimited by ``breakpoints``.

    With breakpoints ``[1, 10]`` the ranges are ``(-inf, 1)``, ``[1, 10)``
    and ``[10, inf)``; ``None`` stands for an open end. A range's
    collector is created by ``create`` the first time a value falls in it.
    """

    __slots__ = ("breakpoints", "_create", "_collectors")

    def __init__(self, breakpoints: Sequence[float], create: Callable[[], T]) -> None:
        self.breakpoints = sorted(breakpoints)
        self._create = create
        self._collectors: dict[int, T] = {}

    def range_index(self, value: float) -> int:
        return bisect.bisect_right(self.breakpoints, value)

    def range_bounds(self, index: int) -> tuple[float | None, float | None]:
        lower = self.breakpoints[index - 1] if index > 0 else None
        upper = self.breakpoints[index] if index < len(self.breakpoints) else None
        return lower, upper

    def get_collector(self, value: float) -> T:
        index = self.range_index(value)
        collector = self._collectors.get(index)
        if collector is None:
            collector = self._create()
            self._collectors[index] = collector
        return collector

    def iter_ranges(self) -> Iterator[tuple[float | None, float | None, T]]:
        """(lower, upper, collector) for every range seen, lowest first."""
        for index in sorted(self._collectors):
            lower, upper = self.range_bounds(index)
            yield lower, upper, self._collectors[index]

    def __len__(self) -> int:
        return len(self._collectors)


K = TypeVar("K", bound=Hashable)


class LazyTable(Generic[K, T]):
    """Collectors keyed exactly, created on first access."""

    __slots__ = ("_create", "_collectors")

    def __init__(self, create: Callable[[], T]) -> None:
        self._create = create
        self._collectors: dict[K, T] = {}

    def get_collector(self, key: K) -> T:
        collector = self._collectors.get(key)
        if collector is None:
            collector = self._create()
            self._collectors[key] = collector
        return collector

    def get(self, key: K) -> T | None:
        return self._collectors.get(key)

    def items(self) -> list[tuple[K, T]]:
        return sorted(self._collectors.items(), key=lambda kv: kv[0])

    def __contains__(self, key: object) -> bool:
        return key in self._collectors

    def __len__(self) -> int:
        return len(self._collectors)
