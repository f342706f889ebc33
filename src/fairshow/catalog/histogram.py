"""Count-bucketed index supporting constant-time minimum lookup and sampling."""

from __future__ import annotations

import random
from typing import Dict, Iterator, List, Optional


class IndexedPathSet:
    """Set of paths with O(1) add, discard and uniform random choice.

    Membership is kept in a list plus a position map; removal swaps the last
    element into the vacated slot.
    """

    __slots__ = ("_items", "_positions")

    def __init__(self) -> None:
        self._items: List[str] = []
        self._positions: Dict[str, int] = {}

    def add(self, path: str) -> None:
        if path in self._positions:
            return
        self._positions[path] = len(self._items)
        self._items.append(path)

    def discard(self, path: str) -> bool:
        index = self._positions.pop(path, None)
        if index is None:
            return False
        last = self._items.pop()
        if index < len(self._items):
            self._items[index] = last
            self._positions[last] = index
        return True

    def choice(self, rng: random.Random) -> str:
        if not self._items:
            raise IndexError("cannot choose from an empty set")
        return self._items[rng.randrange(len(self._items))]

    def __contains__(self, path: object) -> bool:
        return path in self._positions

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))


class CountHistogram:
    """Map display-count levels to the paths currently at each level.

    Only non-empty levels are stored, so the number of keys stays small (two
    in steady state) and ``minimum_level`` is effectively constant time.
    """

    def __init__(self) -> None:
        self._levels: Dict[int, IndexedPathSet] = {}
        self._minimum: Optional[int] = None

    def add(self, path: str, level: int) -> None:
        bucket = self._levels.get(level)
        if bucket is None:
            bucket = IndexedPathSet()
            self._levels[level] = bucket
        bucket.add(path)
        if self._minimum is None or level < self._minimum:
            self._minimum = level

    def discard(self, path: str, level: int) -> bool:
        bucket = self._levels.get(level)
        if bucket is None or not bucket.discard(path):
            return False
        if not bucket:
            del self._levels[level]
            if level == self._minimum:
                self._minimum = min(self._levels) if self._levels else None
        return True

    def move(self, path: str, old_level: int, new_level: int) -> None:
        # Add before discarding so the minimum never passes through None.
        self.add(path, new_level)
        self.discard(path, old_level)

    def minimum_level(self) -> Optional[int]:
        return self._minimum

    def level(self, level: int) -> IndexedPathSet | None:
        return self._levels.get(level)

    def levels(self) -> Dict[int, int]:
        """Return a mapping of level to population, ordered by level."""
        return {level: len(self._levels[level]) for level in sorted(self._levels)}

    def clear(self) -> None:
        self._levels.clear()
        self._minimum = None

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._levels.values())


__all__ = ["IndexedPathSet", "CountHistogram"]
