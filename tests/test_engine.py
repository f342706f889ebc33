"""End-to-end behaviour of the slideshow engine."""

from __future__ import annotations

import os
import threading
from collections import Counter
from operator import attrgetter
from pathlib import Path

import pytest

from fairshow.config.models import FairshowConfig
from fairshow.engine import ScanTask
from fairshow.exclusion.capture import CaptureDateReader
from fairshow.errors import EmptyCatalogError, NoHistoryError, NotFoundError, ScanIOError
from fairshow.settings import SettingsError
from fairshow.state import EngineSnapshot, EntryRecord, StateRepository

from media_helpers import write_media


def _populate(root: Path, *names: str) -> list[str]:
    return [str(write_media(root / name)) for name in names]


def _counts(engine) -> dict[str, int]:
    return dict(engine.get_display_histogram())


def test_restore_without_state_starts_empty(make_engine, state_dir: Path) -> None:
    engine = make_engine()

    outcome = engine.restore()

    assert outcome.status == "missing"
    assert engine.get_stats() == (0, 0)
    assert (state_dir / "state.db").exists()
    assert (state_dir / "ignore").exists()
    with pytest.raises(EmptyCatalogError):
        engine.get_next()
    with pytest.raises(NoHistoryError):
        engine.get_previous()


def test_three_items_complete_a_round_before_repeating(make_engine, media_root: Path) -> None:
    paths = _populate(media_root, "a.jpg", "b.jpg", "c.jpg")
    engine = make_engine()
    report = engine.scan(media_root)
    assert (report.total_files, report.new_files, report.deleted_files) == (3, 3, 0)

    first_round = [engine.get_next().path for _ in range(3)]
    assert sorted(first_round) == sorted(paths)
    assert set(_counts(engine).values()) == {1}

    for _ in range(3):
        engine.get_next()
        counts = _counts(engine).values()
        assert max(counts) - min(counts) <= 1
    assert set(_counts(engine).values()) == {2}


def test_rescan_of_unchanged_directory_is_idempotent(make_engine, media_root: Path) -> None:
    _populate(media_root, "a.jpg", "b.jpg", "sub/c.mp4")
    engine = make_engine()
    engine.scan(media_root)
    engine.get_next()
    before = _counts(engine)

    report = engine.scan(media_root)

    assert report.new_files == 0
    assert report.deleted_files == 0
    assert report.total_files == 3
    assert _counts(engine) == before


def test_deleted_file_is_reported_and_never_drawn(make_engine, media_root: Path) -> None:
    a, b = _populate(media_root, "a.jpg", "b.jpg")
    engine = make_engine()
    engine.scan(media_root)

    os.remove(b)
    report = engine.scan(media_root)

    assert report.deleted_files == 1
    assert engine.get_stats().total_count == 1
    assert {engine.get_next().path for _ in range(4)} == {a}


def test_previous_then_next_replays_without_drawing(make_engine, media_root: Path) -> None:
    _populate(media_root, *(f"{index}.jpg" for index in range(6)))
    engine = make_engine()
    engine.scan(media_root)
    first = engine.get_next()
    second = engine.get_next()
    counts = _counts(engine)

    assert engine.get_previous().path == first.path
    assert engine.get_position().can_go_back is False
    assert engine.get_next().path == second.path
    assert _counts(engine) == counts


def test_exclude_mid_round_favors_lagging_items(make_engine, media_root: Path, state_dir: Path) -> None:
    a, b, c = _populate(media_root, "a.jpg", "b.jpg", "c.jpg")
    with StateRepository(state_dir) as repo:
        repo.save(
            EngineSnapshot(
                root=str(media_root),
                entries=[
                    EntryRecord(path=a, file_size=5, modified_time=os.stat(a).st_mtime, display_count=2),
                    EntryRecord(path=b, file_size=5, modified_time=os.stat(b).st_mtime, display_count=2),
                    EntryRecord(path=c, file_size=5, modified_time=os.stat(c).st_mtime, display_count=1),
                ],
            )
        )
    engine = make_engine()
    assert engine.restore().status == "restored"

    rule = engine.exclude(b, "file")

    assert rule == f"file:{b}"
    assert engine.get_next().path == c
    drawn = {engine.get_next().path for _ in range(6)}
    assert drawn == {a, c}
    assert engine.get_stats().total_count == 2


def test_excluding_current_item_drops_it_from_history(make_engine, media_root: Path) -> None:
    _populate(media_root, "a.jpg", "b.jpg", "c.jpg")
    engine = make_engine()
    engine.scan(media_root)
    first = engine.get_next()
    shown = engine.get_next()

    engine.exclude(shown.path, "file")

    assert engine.current().path == first.path
    assert engine.get_position().can_go_back is False
    upcoming = engine.get_next()
    assert upcoming.path not in {first.path, shown.path}
    assert shown.path not in dict(engine.get_display_histogram())


def test_directory_exclusion_removes_subtree(make_engine, media_root: Path) -> None:
    keep = _populate(media_root, "keep/a.jpg")[0]
    junk = _populate(media_root, "junk/b.jpg", "junk/c.jpg")
    engine = make_engine()
    engine.scan(media_root)

    engine.exclude(junk[0], "directory")

    assert [path for path, _ in engine.get_display_histogram()] == [keep]
    report = engine.scan(media_root)
    assert report.new_files == 0
    assert report.excluded_files == 2


def test_exclude_missing_path_raises(make_engine, media_root: Path) -> None:
    engine = make_engine()

    with pytest.raises(NotFoundError):
        engine.exclude(media_root / "nope.jpg", "file")


def test_snapshot_and_restore_round_trip(make_engine, media_root: Path) -> None:
    _populate(media_root, *(f"{index}.jpg" for index in range(5)))
    engine = make_engine()
    engine.scan(media_root)
    for _ in range(3):
        engine.get_next()
    engine.get_previous()
    engine.exclude(media_root / "4.jpg", "file")
    before = engine.snapshot()
    engine.close()

    restored = make_engine()
    outcome = restored.restore()
    after = restored.snapshot()

    assert outcome.status == "restored"
    by_path = attrgetter("path")
    assert sorted(after.entries, key=by_path) == sorted(before.entries, key=by_path)
    assert after.history == before.history
    assert after.rules == before.rules
    assert after.root == before.root
    history = before.history
    if history.cursor + 1 < len(history.entries):
        assert restored.get_next().path == history.entries[history.cursor + 1]


def test_corrupt_state_degrades_to_empty(make_engine, state_dir: Path) -> None:
    state_dir.mkdir(parents=True)
    (state_dir / "state.db").write_bytes(b"\x00garbage" * 512)
    engine = make_engine()

    outcome = engine.restore()

    assert outcome.status == "corrupt"
    assert "moved" in outcome.message
    assert (state_dir / "state.db.corrupt").exists()
    assert engine.get_stats().total_count == 0


def test_hand_edited_rules_apply_without_restart(make_engine, media_root: Path, state_dir: Path) -> None:
    a, b = _populate(media_root, "a.jpg", "b.gif")
    engine = make_engine()
    engine.scan(media_root)
    rules_path = state_dir / "ignore"

    rules_path.write_text(rules_path.read_text(encoding="utf-8") + "*.gif\n", encoding="utf-8")
    stat = rules_path.stat()
    os.utime(rules_path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 2_000_000_000))

    assert {engine.get_next().path for _ in range(3)} == {a}
    assert engine.get_stats().total_count == 1


def test_reset_on_directory_change_only_when_root_changes(make_engine, tmp_path: Path) -> None:
    first_root = tmp_path / "one"
    second_root = tmp_path / "two"
    shared = _populate(first_root, "a.jpg")[0]
    _populate(second_root, "b.jpg")
    engine = make_engine()
    engine.scan(first_root)
    engine.get_next()

    engine.scan(first_root)
    assert _counts(engine) == {shared: 1}

    report = engine.scan(second_root)
    assert report.deleted_files == 1
    assert set(_counts(engine).values()) == {0}
    assert engine.get_setting("last_directory_path") == str(second_root)


def test_counts_survive_root_change_when_reset_disabled(make_engine, tmp_path: Path) -> None:
    _populate(tmp_path / "lib", "x/a.jpg", "y/b.jpg")
    engine = make_engine()
    engine.save_setting("reset_on_directory_change", "false")
    engine.scan(tmp_path / "lib")
    drawn = engine.get_next()

    engine.scan(tmp_path / "lib" / Path(drawn.path).parent.name)

    assert _counts(engine) == {drawn.path: 1}


def test_cancelled_scan_commits_nothing(make_engine, media_root: Path) -> None:
    _populate(media_root, "a.jpg", "b.jpg")
    engine = make_engine()
    engine.restore()

    # Hold the scan slot so the cancel request lands before the walk starts.
    with engine._scan_lock:
        task = engine.start_scan(media_root)
        task.cancel()
    report = task.result(timeout=10)

    assert report.cancelled
    assert engine.get_stats().total_count == 0
    assert engine.scan_history() == []


def test_scan_progress_reaches_total(make_engine, media_root: Path) -> None:
    _populate(media_root, *(f"{index}.jpg" for index in range(12)))
    config = FairshowConfig.model_validate({"scanning": {"progress_every": 5}})
    engine = make_engine(config=config)
    updates: list[tuple[int, int]] = []

    engine.scan(media_root, on_progress=lambda current, total: updates.append((current, total)))

    assert updates
    assert updates[-1] == (12, 12)


def test_scan_of_missing_root_surfaces_error(make_engine, tmp_path: Path) -> None:
    engine = make_engine()
    task = engine.start_scan(tmp_path / "missing")

    with pytest.raises(ScanIOError):
        task.result(timeout=10)
    assert task.done


def test_settings_are_validated_and_persisted(make_engine) -> None:
    engine = make_engine()
    assert engine.get_setting("display_interval") == "10000"
    assert engine.settings.apply_exif_rotation is True

    with pytest.raises(SettingsError):
        engine.save_setting("display_interval", "100")
    engine.save_setting("display_interval", "20000")
    engine.save_setting("theme", "dark")
    engine.close()

    reopened = make_engine()
    assert reopened.settings.display_interval == 20000
    assert reopened.get_setting("theme") == "dark"
    assert reopened.get_setting("unknown") is None


def test_share_copies_without_overwriting(make_engine, media_root: Path, tmp_path: Path) -> None:
    source = _populate(media_root, "pic.jpg")[0]
    engine = make_engine()
    engine.save_setting("share_directory_path", str(tmp_path / "shared"))

    first = engine.share(source)
    second = engine.share(source)

    assert first == tmp_path / "shared" / "pic.jpg"
    assert second != first
    assert second.name.startswith("pic_") and second.suffix == ".jpg"
    assert second.read_bytes() == Path(source).read_bytes()
    with pytest.raises(NotFoundError):
        engine.share(media_root / "missing.jpg")


def test_reset_counts_zeroes_and_clears_history(make_engine, media_root: Path) -> None:
    _populate(media_root, "a.jpg", "b.jpg")
    engine = make_engine()
    engine.scan(media_root)
    engine.get_next()
    engine.get_next()

    engine.reset_counts()

    assert set(_counts(engine).values()) == {0}
    assert engine.get_position() == (0, 2, False)
    with pytest.raises(NoHistoryError):
        engine.get_previous()


def test_restore_keeps_detached_history(make_engine, media_root: Path) -> None:
    _populate(media_root, "a.jpg", "b.jpg", "c.jpg")
    engine = make_engine()
    engine.scan(media_root)
    first = engine.get_next()
    second = engine.get_next()
    engine.get_previous()
    engine.exclude(first.path, "file")
    assert engine.current() is None
    before = engine.snapshot()
    drawn_before = sum(_counts(engine).values())
    engine.close()

    restored = make_engine()
    restored.restore()
    assert restored.snapshot().history == before.history
    replay = restored.get_next()

    assert replay.path == second.path
    assert replay.display_count == 1
    assert sum(_counts(restored).values()) == drawn_before


class _GatedReader(CaptureDateReader):
    """Blocks while reading the capture date of one file name."""

    def __init__(self, blocked_name: str) -> None:
        super().__init__()
        self.blocked_name = blocked_name
        self.started = threading.Event()
        self.release = threading.Event()

    def read(self, path, modified_time=None):
        if Path(path).name == self.blocked_name:
            self.started.set()
            self.release.wait(10)
        return super().read(path, modified_time)


def test_draws_and_excludes_during_scan_are_kept(make_engine, media_root: Path, state_dir: Path) -> None:
    reader = _GatedReader("f.gif")
    engine = make_engine(capture_reader=reader)
    engine.restore()
    rules_file = state_dir / "ignore"
    with rules_file.open("a", encoding="utf-8") as handle:
        handle.write("date:1999-01-01\n")
    a, b, c, d = _populate(media_root, "a.jpg", "b.jpg", "c.jpg", "d.jpg")
    engine.scan(media_root)
    engine.get_next()
    engine.get_next()
    late = str(write_media(media_root / "e.jpg"))
    gated = str(write_media(media_root / "f.gif"))

    task = engine.start_scan(media_root)
    try:
        # f.gif sorts last, so the walk is parked on it without the engine lock.
        assert reader.started.wait(10)
        engine.get_next()
        engine.get_next()
        engine.exclude(b, "file")
        with rules_file.open("a", encoding="utf-8") as handle:
            handle.write(f"file:{late}\n")
        before = _counts(engine)
    finally:
        reader.release.set()
    report = task.result(timeout=10)

    after = _counts(engine)
    assert b not in after
    assert late not in after
    assert after[gated] == 0
    for path, count in before.items():
        assert after[path] == count
    assert sorted(after) == sorted([a, c, d, gated])
    assert engine.level_populations() == dict(Counter(after.values()))
    assert report.excluded_files >= 1
    assert report.total_files == 4
    assert not any(engine.exclusions.is_path_excluded(path) for path in after)
    engine.close()

    restored = make_engine()
    restored.restore()
    assert _counts(restored) == after


def test_scan_task_result_requires_a_report(tmp_path: Path) -> None:
    task = ScanTask(tmp_path)

    with pytest.raises(TimeoutError):
        task.result(timeout=0)

    task._done.set()
    with pytest.raises(RuntimeError):
        task.result(timeout=0)
