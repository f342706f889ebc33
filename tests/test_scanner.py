"""Walker and incremental scanner tests."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from fairshow.errors import ScanIOError
from fairshow.exclusion import ExclusionEngine
from fairshow.scanning import IncrementalScanner, KnownFile, MediaWalker

from media_helpers import write_media


@pytest.fixture
def exclusions(tmp_path: Path) -> ExclusionEngine:
    engine = ExclusionEngine(tmp_path / "ignore")
    engine.ensure_file()
    engine.reload()
    return engine


def _known(root: Path, *names: str) -> dict[str, KnownFile]:
    known: dict[str, KnownFile] = {}
    for name in names:
        stat = (root / name).stat()
        known[str(root / name)] = KnownFile(stat.st_size, stat.st_mtime)
    return known


def test_walker_filters_extensions_and_hidden_entries(media_root: Path) -> None:
    write_media(media_root / "a.JPG")
    write_media(media_root / "clip.mp4")
    write_media(media_root / "notes.txt")
    write_media(media_root / ".hidden.jpg")
    write_media(media_root / ".cache" / "b.jpg")
    write_media(media_root / "sub" / "c.png")

    walker = MediaWalker()
    found = sorted(walker.walk(media_root))

    assert found == sorted(
        [
            str(media_root / "a.JPG"),
            str(media_root / "clip.mp4"),
            str(media_root / "sub" / "c.png"),
        ]
    )
    assert walker.media_kind("x.mov") == "video"
    assert walker.media_kind("x.heic") == "image"
    assert walker.media_kind("x.txt") is None


def test_walker_rejects_missing_root(tmp_path: Path) -> None:
    with pytest.raises(ScanIOError):
        list(MediaWalker().walk(tmp_path / "missing"))


def test_first_scan_adds_everything(media_root: Path, exclusions: ExclusionEngine) -> None:
    for name in ("a.jpg", "b.jpg", "sub/c.jpg"):
        write_media(media_root / name)
    updates: list[tuple[int, int]] = []

    plan = IncrementalScanner(MediaWalker(), progress_every=1).scan(
        media_root, {}, exclusions, progress=lambda current, total: updates.append((current, total))
    )

    assert not plan.cancelled
    assert plan.total_files == 3
    assert len(plan.added) == 3
    assert not plan.deleted and not plan.refreshed
    assert updates[:4] == [(1, 0), (2, 0), (3, 0), (0, 3)]
    assert updates[-1] == (3, 3)


def test_rescan_is_idempotent(media_root: Path, exclusions: ExclusionEngine) -> None:
    write_media(media_root / "a.jpg")
    write_media(media_root / "b.jpg")
    known = _known(media_root, "a.jpg", "b.jpg")

    plan = IncrementalScanner(MediaWalker()).scan(media_root, known, exclusions)

    assert plan.total_files == 2
    assert not plan.added and not plan.refreshed and not plan.deleted


def test_changed_and_deleted_files_are_reported(
    media_root: Path, exclusions: ExclusionEngine
) -> None:
    write_media(media_root / "a.jpg", mtime=1_000_000)
    write_media(media_root / "b.jpg")
    known = _known(media_root, "a.jpg", "b.jpg")
    known[str(media_root / "gone.jpg")] = KnownFile(5, 5.0)
    write_media(media_root / "a.jpg", b"bigger payload", mtime=2_000_000)

    plan = IncrementalScanner(MediaWalker()).scan(media_root, known, exclusions)

    assert [item.path for item in plan.refreshed] == [str(media_root / "a.jpg")]
    assert plan.deleted == [str(media_root / "gone.jpg")]
    assert plan.total_files == 2


def test_excluded_files_are_never_added(media_root: Path, exclusions: ExclusionEngine) -> None:
    write_media(media_root / "keep.jpg")
    write_media(media_root / "@eaDir" / "thumb.jpg")
    write_media(media_root / "old" / "x.jpg")
    exclusions.add_rule(media_root / "old" / "x.jpg", "directory")
    known = {str(media_root / "old" / "x.jpg"): KnownFile(5, 1.0)}

    plan = IncrementalScanner(MediaWalker()).scan(media_root, known, exclusions)

    assert [item.path for item in plan.added] == [str(media_root / "keep.jpg")]
    assert plan.excluded == [str(media_root / "old" / "x.jpg")]
    assert plan.excluded_new == 1
    assert plan.total_files == 1


def test_cancelled_scan_returns_empty_plan(media_root: Path, exclusions: ExclusionEngine) -> None:
    write_media(media_root / "a.jpg")
    cancel = threading.Event()
    cancel.set()

    plan = IncrementalScanner(MediaWalker()).scan(
        media_root, {"/elsewhere/x.jpg": KnownFile(1, 1.0)}, exclusions, cancel=cancel
    )

    assert plan.cancelled
    assert not plan.added and not plan.deleted


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)
def test_unreadable_subtree_is_not_reported_deleted(
    media_root: Path, exclusions: ExclusionEngine
) -> None:
    write_media(media_root / "open" / "a.jpg")
    locked = media_root / "locked"
    write_media(locked / "b.jpg")
    known = _known(media_root, "open/a.jpg", "locked/b.jpg")
    locked.chmod(0)
    try:
        plan = IncrementalScanner(MediaWalker()).scan(media_root, known, exclusions)
    finally:
        locked.chmod(0o755)

    assert plan.skipped_directories == [str(locked)]
    assert plan.deleted == []
    assert plan.total_files == 2


def test_walk_reports_running_counts_before_total(
    media_root: Path, exclusions: ExclusionEngine
) -> None:
    for index in range(7):
        write_media(media_root / f"{index}.jpg")
    updates: list[tuple[int, int]] = []

    IncrementalScanner(MediaWalker(), progress_every=3).scan(
        media_root, {}, exclusions, progress=lambda current, total: updates.append((current, total))
    )

    walking = [update for update in updates if update[1] == 0]
    assert walking == [(3, 0), (6, 0)]
    assert updates.index((0, 7)) == len(walking)
    assert updates[-1] == (7, 7)
