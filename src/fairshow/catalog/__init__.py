"""Catalog store holding per-file exposure counters."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional, Tuple

from fairshow.errors import NotFoundError

from .histogram import CountHistogram, IndexedPathSet
from .models import CatalogEntry, CatalogStats, MediaKind

LOGGER = logging.getLogger(__name__)


class CatalogStore:
    """Own the set of known media files and the count histogram derived from it.

    Every mutation keeps the entry map and the histogram in lockstep; callers
    never touch the histogram directly. The store is not thread-safe on its
    own and relies on the engine's single-writer lock.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CatalogEntry] = {}
        self._histogram = CountHistogram()

    @classmethod
    def load(cls, entries: Iterable[CatalogEntry] | None = None) -> "CatalogStore":
        """Build a store from restored entries, or an empty store when none exist.

        Args:
            entries: Entries restored from a snapshot.

        Returns:
            CatalogStore: Store containing the given entries.
        """
        store = cls()
        for entry in entries or ():
            if entry.path in store._entries:
                LOGGER.warning("Duplicate catalog entry for %s ignored during load.", entry.path)
                continue
            store._entries[entry.path] = entry
            store._histogram.add(entry.path, entry.display_count)
        return store

    # ------------------------------------------------------------------ #
    # Mutations                                                          #
    # ------------------------------------------------------------------ #

    def upsert(
        self,
        path: str,
        size: int,
        modified_time: float,
        media_kind: MediaKind = "image",
    ) -> bool:
        """Insert a new entry at count zero or refresh an existing one.

        Args:
            path: Absolute path of the file.
            size: Current size in bytes.
            modified_time: Current POSIX modification time.
            media_kind: Media category for new entries.

        Returns:
            bool: True when the path was not previously cataloged.
        """
        existing = self._entries.get(path)
        if existing is None:
            self._entries[path] = CatalogEntry(
                path=path,
                file_size=size,
                modified_time=modified_time,
                media_kind=media_kind,
            )
            self._histogram.add(path, 0)
            return True

        if existing.file_size != size or existing.modified_time != modified_time:
            existing.file_size = size
            existing.modified_time = modified_time
            existing.captured_on = None
        return False

    def remove(self, path: str) -> Optional[CatalogEntry]:
        """Remove an entry; unknown paths are ignored.

        Args:
            path: Absolute path of the entry to remove.

        Returns:
            Optional[CatalogEntry]: The removed entry, if any.
        """
        entry = self._entries.pop(path, None)
        if entry is not None:
            self._histogram.discard(path, entry.display_count)
        return entry

    def record_display(self, path: str, *, when: datetime | None = None) -> CatalogEntry:
        """Count one draw of ``path``.

        Args:
            path: Absolute path of the drawn entry.
            when: Timestamp to record; defaults to now in UTC.

        Returns:
            CatalogEntry: The updated entry.

        Raises:
            NotFoundError: If the path is not cataloged.
        """
        entry = self._entries.get(path)
        if entry is None:
            raise NotFoundError(f"{path} is not in the catalog")
        previous = entry.display_count
        entry.display_count = previous + 1
        entry.last_displayed_at = when or datetime.now(timezone.utc)
        self._histogram.move(path, previous, entry.display_count)
        return entry

    def reset_counts(self) -> None:
        """Zero every display counter and forget last-displayed timestamps."""
        self._histogram.clear()
        for entry in self._entries.values():
            entry.display_count = 0
            entry.last_displayed_at = None
            self._histogram.add(entry.path, 0)

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def minimum_level(self) -> Optional[int]:
        """Return the lowest display count in the catalog, or None when empty."""
        return self._histogram.minimum_level()

    def eligible_at_level(self, level: int) -> frozenset[str]:
        """Return the paths whose display count equals ``level``."""
        bucket = self._histogram.level(level)
        return frozenset(bucket) if bucket is not None else frozenset()

    def sample_at_level(self, level: int, rng: random.Random) -> str:
        """Pick one path uniformly at random among those at ``level``.

        Raises:
            NotFoundError: If no entry sits at that level.
        """
        bucket: IndexedPathSet | None = self._histogram.level(level)
        if bucket is None or not bucket:
            raise NotFoundError(f"No catalog entries at display level {level}")
        return bucket.choice(rng)

    def level_size(self, level: int) -> int:
        bucket = self._histogram.level(level)
        return len(bucket) if bucket is not None else 0

    def level_populations(self) -> dict[int, int]:
        return self._histogram.levels()

    def get(self, path: str) -> Optional[CatalogEntry]:
        return self._entries.get(path)

    def entries(self) -> Iterator[CatalogEntry]:
        return iter(list(self._entries.values()))

    def paths(self) -> List[str]:
        return list(self._entries)

    def displayed_count(self) -> int:
        """Return how many entries have been drawn at least once."""
        return len(self._entries) - self.level_size(0)

    def stats(self) -> CatalogStats:
        return CatalogStats(total_count=len(self._entries), displayed_count=self.displayed_count())

    def histogram(self) -> List[Tuple[str, int]]:
        """Return ``(path, display_count)`` pairs ordered by path."""
        return [(path, self._entries[path].display_count) for path in sorted(self._entries)]

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CatalogStore", "CatalogEntry", "CatalogStats", "CountHistogram", "MediaKind"]
