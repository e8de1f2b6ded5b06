from __future__ import annotations

from collections.abc import Hashable, Iterable


def dedupe[T: Hashable](items: Iterable[T]) -> list[T]:
    """Drop repeated items, keeping the first occurrence order."""
    return list(dict.fromkeys(items))
