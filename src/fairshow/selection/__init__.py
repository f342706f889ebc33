"""Fair selection over the catalog with replayable navigation."""

from __future__ import annotations

import logging
import random
from typing import NamedTuple, Optional

from fairshow.catalog import CatalogEntry, CatalogStore
from fairshow.errors import EmptyCatalogError, NoHistoryError

from .history import DEFAULT_HISTORY_CAPACITY, NavigationHistory

LOGGER = logging.getLogger(__name__)


class Position(NamedTuple):
    """Progress through the current round as reported to callers.

    Attributes:
        current_index: Items drawn so far in the current round; equals
            ``total_eligible`` right after a round completes.
        total_eligible: Number of eligible (cataloged, non-excluded) items.
        can_go_back: Whether backward navigation is possible.
    """

    current_index: int
    total_eligible: int
    can_go_back: bool


class Selection(NamedTuple):
    """Result of a forward move."""

    entry: CatalogEntry
    drawn: bool


class FairSelector:
    """Draw catalog entries so every eligible item is shown equally often.

    Each draw samples uniformly from the entries sitting at the catalog's
    minimum display level. Drawn entries move up one level, so the remaining
    pool of the round shrinks without ever materializing a shuffle, and the
    next round starts automatically once the minimum level is exhausted.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        history: NavigationHistory | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.catalog = catalog
        self.history = history or NavigationHistory(DEFAULT_HISTORY_CAPACITY)
        self._rng = rng or random.Random()

    def draw(self) -> CatalogEntry:
        """Perform a fresh draw, count it, and append it to history.

        Raises:
            EmptyCatalogError: If no eligible entries exist.
        """
        level = self.catalog.minimum_level()
        if level is None:
            raise EmptyCatalogError("No eligible items to show; scan a directory first.")
        path = self.catalog.sample_at_level(level, self._rng)
        entry = self.catalog.record_display(path)
        self.history.append(path)
        LOGGER.debug("Drew %s (level %d -> %d)", path, level, entry.display_count)
        return entry

    def next(self) -> Selection:
        """Replay a redo entry when one exists, otherwise draw.

        Returns:
            Selection: The entry and whether a draw was consumed.

        Raises:
            EmptyCatalogError: If a draw is needed and nothing is eligible.
        """
        while self.history.has_forward:
            path = self.history.forward()
            entry = self.catalog.get(path)
            if entry is not None:
                return Selection(entry, drawn=False)
            LOGGER.debug("Dropping stale history entry %s", path)
            self.history.discard(path)
        return Selection(self.draw(), drawn=True)

    def previous(self) -> CatalogEntry:
        """Move back through history without touching any counter.

        Raises:
            NoHistoryError: If there is nothing earlier to show.
        """
        path: Optional[str] = self.history.back()
        while path is not None:
            entry = self.catalog.get(path)
            if entry is not None:
                return entry
            LOGGER.debug("Dropping stale history entry %s", path)
            self.history.discard(path)
            path = self.history.current()
        raise NoHistoryError("Cannot go back: no earlier entry in history.")

    def forget(self, path: str) -> None:
        """Drop ``path`` from navigation after it left the catalog."""
        self.history.discard(path)

    def current(self) -> Optional[CatalogEntry]:
        path = self.history.current()
        return self.catalog.get(path) if path is not None else None

    def position(self) -> Position:
        total = len(self.catalog)
        level = self.catalog.minimum_level()
        if level is None:
            return Position(0, 0, self.history.can_go_back)
        remaining = self.catalog.level_size(level)
        drawn = total - remaining
        if drawn == 0 and level > 0:
            drawn = total
        return Position(drawn, total, self.history.can_go_back)


__all__ = ["FairSelector", "NavigationHistory", "Position", "Selection"]
