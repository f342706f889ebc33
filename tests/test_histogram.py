"""Tests for the count-bucketed histogram."""

import random

import pytest

from fairshow.catalog.histogram import CountHistogram, IndexedPathSet


def test_indexed_set_swap_remove_keeps_membership_consistent() -> None:
    items = IndexedPathSet()
    for name in ("a", "b", "c", "d"):
        items.add(name)

    assert items.discard("b")
    assert not items.discard("b")
    assert sorted(items) == ["a", "c", "d"]
    assert "d" in items and "b" not in items
    assert len(items) == 3


def test_indexed_set_choice_is_uniform_enough() -> None:
    items = IndexedPathSet()
    for name in ("a", "b", "c"):
        items.add(name)
    rng = random.Random(1)

    counts = {"a": 0, "b": 0, "c": 0}
    for _ in range(3000):
        counts[items.choice(rng)] += 1

    assert all(800 < count < 1200 for count in counts.values())


def test_indexed_set_choice_on_empty_raises() -> None:
    with pytest.raises(IndexError):
        IndexedPathSet().choice(random.Random(0))


def test_histogram_tracks_minimum_through_moves() -> None:
    histogram = CountHistogram()
    histogram.add("a", 0)
    histogram.add("b", 0)

    histogram.move("a", 0, 1)
    assert histogram.minimum_level() == 0

    histogram.move("b", 0, 1)
    assert histogram.minimum_level() == 1
    assert histogram.levels() == {1: 2}
    assert len(histogram) == 2


def test_histogram_drops_empty_levels_and_recomputes_minimum() -> None:
    histogram = CountHistogram()
    histogram.add("a", 2)
    histogram.add("b", 5)

    assert histogram.discard("a", 2)
    assert histogram.minimum_level() == 5
    assert histogram.level(2) is None

    assert histogram.discard("b", 5)
    assert histogram.minimum_level() is None
    assert not histogram.discard("b", 5)
