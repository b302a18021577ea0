"""Memoization helpers for values that are expensive or rarely change.

The control loop owns its caches (alliance, goal geometry) through the
robot context instead of module-level singletons.
"""

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

_UNSET = object()


class Cache(Generic[T]):
    """Explicitly refreshed cache around a supplier.

    ``get`` computes the value on first use only; ``update`` forces a
    refresh. ``None`` is a legitimate cached value.
    """

    def __init__(self, supplier: Callable[[], T]):
        self._supplier = supplier
        self._value = _UNSET
        self._lock = threading.Lock()

    def get(self) -> T:
        with self._lock:
            if self._value is _UNSET:
                self._value = self._supplier()
            return self._value

    def update(self) -> T:
        """Recompute the value from the supplier and return it."""
        value = self._supplier()
        with self._lock:
            self._value = value
        return value

    def invalidate(self) -> None:
        """Drop the cached value so the next ``get`` recomputes it."""
        with self._lock:
            self._value = _UNSET

    @property
    def is_cached(self) -> bool:
        return self._value is not _UNSET


class CountingCache(Cache[T]):
    """Cache that refreshes itself on every ``max_count``-th read.

    Args:
        supplier: Zero-argument callable producing the value.
        max_count: Number of reads between refreshes (>= 1). A value of 1
            refreshes on every read.

    Raises:
        ValueError: If max_count is less than 1.
    """

    def __init__(self, supplier: Callable[[], T], max_count: int):
        if max_count < 1:
            raise ValueError(f"max_count must be >= 1, got {max_count}")
        super().__init__(supplier)
        self.max_count = max_count
        self._count = 0

    def get(self) -> T:
        self._count += 1
        if self._count >= self.max_count:
            self._count = 0
            return self.update()
        return super().get()
