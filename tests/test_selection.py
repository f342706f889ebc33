"""Fair selection tests."""

from __future__ import annotations

import random

import pytest

from fairshow.catalog import CatalogStore
from fairshow.errors import EmptyCatalogError, NoHistoryError
from fairshow.selection import FairSelector


def _selector(count: int, seed: int = 11) -> FairSelector:
    store = CatalogStore()
    for index in range(count):
        store.upsert(f"/media/{index:03d}.jpg", 100, 1.0)
    return FairSelector(store, rng=random.Random(seed))


def test_one_round_is_a_permutation() -> None:
    selector = _selector(25)

    drawn = [selector.draw().path for _ in range(25)]

    assert sorted(drawn) == sorted(selector.catalog.paths())


@pytest.mark.parametrize("draws", [1, 7, 30, 99])
def test_spread_never_exceeds_one(draws: int) -> None:
    selector = _selector(10)

    for _ in range(draws):
        selector.draw()
        counts = [count for _, count in selector.catalog.histogram()]
        assert max(counts) - min(counts) <= 1


def test_single_item_is_returned_every_round() -> None:
    selector = _selector(1)

    paths = {selector.next().entry.path for _ in range(5)}

    assert paths == {"/media/000.jpg"}
    assert selector.catalog.get("/media/000.jpg").display_count == 5


def test_empty_catalog_raises() -> None:
    selector = _selector(0)

    with pytest.raises(EmptyCatalogError):
        selector.next()
    with pytest.raises(NoHistoryError):
        selector.previous()


def test_back_then_next_replays_without_drawing() -> None:
    selector = _selector(5)
    first = selector.next().entry.path
    second = selector.next().entry.path
    counts_before = dict(selector.catalog.histogram())

    assert selector.previous().path == first
    replay = selector.next()

    assert replay.entry.path == second
    assert not replay.drawn
    assert dict(selector.catalog.histogram()) == counts_before


def test_next_skips_stale_redo_entries() -> None:
    selector = _selector(4)
    first = selector.next().entry.path
    second = selector.next().entry.path
    third = selector.next().entry.path
    selector.previous()
    selector.previous()

    selector.catalog.remove(second)
    replay = selector.next()

    assert replay.entry.path == third
    assert not replay.drawn
    assert first in selector.history


def test_position_reports_round_progress() -> None:
    selector = _selector(3)

    assert selector.position() == (0, 3, False)
    selector.next()
    assert selector.position() == (1, 3, False)
    selector.next()
    selector.next()
    # Round complete: everyone sits at level 1.
    assert selector.position() == (3, 3, True)
    selector.next()
    assert selector.position().current_index == 1
