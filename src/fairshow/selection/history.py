"""Bounded back/forward navigation over previously displayed paths."""

from __future__ import annotations

from typing import Iterable, List, Optional

from fairshow.errors import NoHistoryError

DEFAULT_HISTORY_CAPACITY = 100


class NavigationHistory:
    """Cursor-based log of displayed paths.

    The cursor always points at the entry currently shown (``0 <= cursor <
    len``), or is ``0`` when the history is empty. Entries after the cursor
    are redo targets that a forward move replays without drawing.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_HISTORY_CAPACITY,
        entries: Iterable[str] | None = None,
        cursor: int | None = None,
        *,
        detached: bool = False,
    ) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1.")
        self._capacity = capacity
        self._entries: List[str] = list(entries or ())
        overflow = len(self._entries) - capacity
        if overflow > 0:
            del self._entries[:overflow]
            if cursor is not None:
                cursor -= overflow
        if cursor is None:
            cursor = len(self._entries) - 1
        self._cursor = min(max(cursor, 0), max(len(self._entries) - 1, 0))
        # Set when the shown entry was discarded and nothing earlier remains.
        self._detached = detached and bool(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    @property
    def detached(self) -> bool:
        return self._detached

    @property
    def can_go_back(self) -> bool:
        return self._cursor > 0 and not self._detached

    @property
    def has_forward(self) -> bool:
        if self._detached:
            return bool(self._entries)
        return self._cursor < len(self._entries) - 1

    def current(self) -> Optional[str]:
        if self._detached or not self._entries:
            return None
        return self._entries[self._cursor]

    def append(self, path: str) -> None:
        """Record a freshly drawn path at the tail and move the cursor onto it."""
        if self._detached:
            del self._entries[self._cursor :]
            self._detached = False
        elif self.has_forward:
            del self._entries[self._cursor + 1 :]
        self._entries.append(path)
        if len(self._entries) > self._capacity:
            del self._entries[0]
        self._cursor = len(self._entries) - 1

    def back(self) -> str:
        """Step the cursor backwards.

        Raises:
            NoHistoryError: If the cursor is already at the oldest entry.
        """
        if not self.can_go_back:
            raise NoHistoryError("Cannot go back: no earlier entry in history.")
        self._cursor -= 1
        return self._entries[self._cursor]

    def forward(self) -> str:
        """Step the cursor forwards onto a redo entry.

        Raises:
            NoHistoryError: If there is no redo entry.
        """
        if not self.has_forward:
            raise NoHistoryError("No forward entry in history.")
        if self._detached:
            self._detached = False
        else:
            self._cursor += 1
        return self._entries[self._cursor]

    def discard(self, path: str) -> bool:
        """Drop every occurrence of ``path``.

        When the current entry is dropped the cursor settles on the nearest
        earlier entry, so the following forward move replays the entry that
        came after it. With no earlier entry the history becomes detached:
        nothing is current and the next forward move returns the first entry.

        Returns:
            bool: True if anything was removed.
        """
        if path not in self._entries:
            return False
        shown = None if self._detached else self._cursor
        kept: List[str] = []
        kept_up_to_cursor = 0
        current_removed = False
        for index, entry in enumerate(self._entries):
            if entry == path:
                if index == shown:
                    current_removed = True
                continue
            kept.append(entry)
            if shown is not None and index <= shown:
                kept_up_to_cursor += 1
        self._entries = kept
        if not kept:
            self._cursor = 0
            self._detached = False
        elif shown is None:
            self._cursor = 0
        elif current_removed and kept_up_to_cursor == 0:
            self._cursor = 0
            self._detached = True
        else:
            self._cursor = max(kept_up_to_cursor - 1, 0)
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = 0
        self._detached = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries


__all__ = ["NavigationHistory", "DEFAULT_HISTORY_CAPACITY"]
