"""Shared fixtures for the fairshow test suite."""

from __future__ import annotations

import random
from pathlib import Path
from typing import Callable, Iterator

import pytest

from fairshow.engine import SlideshowEngine


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "photos"
    root.mkdir()
    return root


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def make_engine(state_dir: Path) -> Iterator[Callable[..., SlideshowEngine]]:
    """Yield a factory for engines sharing one state directory."""
    engines: list[SlideshowEngine] = []

    def _factory(seed: int = 7, **kwargs) -> SlideshowEngine:
        engine = SlideshowEngine(state_dir, rng=random.Random(seed), **kwargs)
        engines.append(engine)
        return engine

    yield _factory

    for engine in engines:
        engine.close()
