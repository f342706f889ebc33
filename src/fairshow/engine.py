"""Engine facade that owns the catalog, selection, scanning and persistence."""

from __future__ import annotations

import logging
import os
import random
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Literal, NamedTuple, Optional, Tuple

from fairshow.catalog import CatalogEntry, CatalogStats, CatalogStore
from fairshow.config.models import FairshowConfig
from fairshow.errors import NotFoundError
from fairshow.exclusion import DEFAULT_RULES_FILENAME, CaptureDateReader, ExclusionEngine, ExclusionRule
from fairshow.scanning import (
    IncrementalScanner,
    KnownFile,
    MediaWalker,
    ProgressStream,
    ScanPlan,
    ScanReport,
)
from fairshow.selection import FairSelector, NavigationHistory, Position
from fairshow.settings import LAST_DIRECTORY_KEY, PlaybackSettings, SettingsError, validate_setting
from fairshow.state import (
    EngineSnapshot,
    EntryRecord,
    HistoryState,
    MissingStateError,
    PersistenceCorruptError,
    StateDelta,
    StateRepository,
)

LOGGER = logging.getLogger(__name__)

RestoreStatus = Literal["restored", "missing", "corrupt"]


class RestoreOutcome(NamedTuple):
    """What happened when persisted state was loaded.

    Attributes:
        status: ``restored``, ``missing`` (fresh start) or ``corrupt`` (state
            was unreadable and has been moved aside).
        message: Human-readable description for the presentation layer.
        entry_count: Number of catalog entries after restore.
    """

    status: RestoreStatus
    message: str
    entry_count: int


class ScanTask:
    """Handle on a background scan.

    The caller may watch progress, cancel cooperatively, and wait for the
    report with a bounded timeout.
    """

    def __init__(self, root: Path, *, progress_buffer: int = 16) -> None:
        self.root = root
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._progress = ProgressStream(progress_buffer)
        self._report: Optional[ScanReport] = None
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def progress(self) -> ProgressStream:
        """Return the coalescing progress stream; it closes when the scan ends."""
        return self._progress

    def cancel(self) -> None:
        """Ask the scan to stop; a cancelled scan commits nothing."""
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scan finishes or ``timeout`` elapses.

        Returns:
            bool: True when the scan finished.
        """
        return self._done.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> ScanReport:
        """Return the scan report, re-raising any error from the worker.

        Raises:
            TimeoutError: If the scan did not finish within ``timeout``.
            RuntimeError: If the scan was marked done without a report.
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Scan of {self.root} did not finish within {timeout}s")
        if self._error is not None:
            raise self._error
        if self._report is None:
            raise RuntimeError(f"Scan of {self.root} finished without a report")
        return self._report

    def _finish(self, report: ScanReport) -> None:
        self._report = report
        self._done.set()

    def _fail(self, error: BaseException) -> None:
        self._error = error
        self._done.set()


class SlideshowEngine:
    """Single owner of playlist state.

    Every public operation runs under one re-entrant lock. Scans walk the
    filesystem on a worker thread without the lock and commit under it, so
    draws keep working against the last committed catalog while a scan runs.
    State is restored lazily on first use unless :meth:`restore` is called.
    """

    def __init__(
        self,
        state_dir: Path | None = None,
        *,
        config: FairshowConfig | None = None,
        rng: random.Random | None = None,
        capture_reader: CaptureDateReader | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            state_dir: Directory for the state database and rule file; defaults
                to ``config.state.directory``.
            config: Resolved configuration; defaults are used when omitted.
            rng: Random source for draws.
            capture_reader: Capture-date reader used by date rules.
        """
        self._config = config or FairshowConfig()
        self._state_dir = Path(state_dir or self._config.state.directory).expanduser()
        self._repository = StateRepository(
            self._state_dir,
            scan_history_limit=self._config.state.scan_history_limit,
        )
        self._exclusions = ExclusionEngine(
            self._state_dir / DEFAULT_RULES_FILENAME,
            reader=capture_reader,
        )
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._scan_lock = threading.Lock()
        self._ready = False
        self._outcome: Optional[RestoreOutcome] = None
        self._reset_memory()

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    @property
    def config(self) -> FairshowConfig:
        return self._config

    @property
    def exclusions(self) -> ExclusionEngine:
        return self._exclusions

    @property
    def root(self) -> Optional[str]:
        with self._lock:
            self._ensure_ready()
            return self._root

    @property
    def restore_outcome(self) -> Optional[RestoreOutcome]:
        return self._outcome

    def restore(self) -> RestoreOutcome:
        """Load persisted state, degrading to an empty catalog when needed.

        Missing state starts fresh. Corrupt state is moved aside to
        ``state.db.corrupt`` and the engine starts fresh; either way the
        condition is reported rather than raised.

        Returns:
            RestoreOutcome: What was loaded.
        """
        with self._lock:
            try:
                snapshot = self._repository.load()
            except MissingStateError:
                self._start_fresh()
                outcome = RestoreOutcome("missing", "No saved state; starting with an empty catalog.", 0)
            except PersistenceCorruptError as exc:
                LOGGER.error("%s", exc)
                moved = self._repository.quarantine()
                self._start_fresh()
                where = f" (moved to {moved})" if moved else ""
                outcome = RestoreOutcome(
                    "corrupt",
                    f"Saved state was unreadable{where}; starting with an empty catalog.",
                    0,
                )
            else:
                self._apply_snapshot(snapshot)
                outcome = RestoreOutcome(
                    "restored",
                    f"Restored {len(self._catalog)} entries.",
                    len(self._catalog),
                )
            self._ready = True
            self._outcome = outcome
            LOGGER.info("Restore: %s", outcome.message)
            return outcome

    def snapshot(self) -> EngineSnapshot:
        """Return the full in-memory state as a persistable snapshot."""
        with self._lock:
            self._ensure_ready()
            return self._build_snapshot()

    def close(self) -> None:
        with self._lock:
            self._repository.close()

    def __enter__(self) -> "SlideshowEngine":
        with self._lock:
            self._ensure_ready()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Scanning                                                           #
    # ------------------------------------------------------------------ #

    def start_scan(self, root: str | Path) -> ScanTask:
        """Start an incremental scan of ``root`` on a background thread.

        Args:
            root: Directory to reconcile the catalog against.

        Returns:
            ScanTask: Handle for progress, cancellation and the final report.
        """
        with self._lock:
            self._ensure_ready()
        resolved = Path(os.path.abspath(Path(root).expanduser()))
        task = ScanTask(resolved)
        thread = threading.Thread(
            target=self._run_scan,
            args=(task,),
            name=f"fairshow-scan-{resolved.name or 'root'}",
            daemon=True,
        )
        task._thread = thread
        thread.start()
        return task

    def scan(
        self,
        root: str | Path,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> ScanReport:
        """Scan ``root`` and block until the result is committed.

        Args:
            root: Directory to scan.
            on_progress: Optional ``(current, total)`` callback run on the
                calling thread.

        Returns:
            ScanReport: Summary of the committed scan.
        """
        task = self.start_scan(root)
        if on_progress is not None:
            for update in task.progress():
                on_progress(update.current, update.total)
        return task.result()

    def scan_history(self) -> List[ScanReport]:
        with self._lock:
            self._ensure_ready()
            return list(self._scans)

    # ------------------------------------------------------------------ #
    # Navigation                                                         #
    # ------------------------------------------------------------------ #

    def get_next(self) -> CatalogEntry:
        """Return the next item, replaying redo history before drawing.

        Raises:
            EmptyCatalogError: If nothing is eligible.
        """
        with self._lock:
            self._ensure_ready()
            removed = self._refresh_rules()
            selection = self._selector.next()
            upserts = [EntryRecord.from_entry(selection.entry)] if selection.drawn else []
            self._repository.commit(
                StateDelta(
                    upserts=upserts,
                    removals=removed or [],
                    history=self._history_state(),
                    rules=self._exclusions.render_lines() if removed is not None else None,
                )
            )
            return selection.entry

    def get_previous(self) -> CatalogEntry:
        """Step back through history without drawing.

        Raises:
            NoHistoryError: If there is nothing earlier.
        """
        with self._lock:
            self._ensure_ready()
            entry = self._selector.previous()
            self._repository.commit(StateDelta(history=self._history_state()))
            return entry

    def get_position(self) -> Position:
        with self._lock:
            self._ensure_ready()
            return self._selector.position()

    def current(self) -> Optional[CatalogEntry]:
        with self._lock:
            self._ensure_ready()
            return self._selector.current()

    # ------------------------------------------------------------------ #
    # Exclusion                                                          #
    # ------------------------------------------------------------------ #

    def exclude(self, path: str | Path, kind: str) -> str:
        """Add an exclusion rule derived from ``path`` and apply it immediately.

        Args:
            path: Media file the rule is derived from.
            kind: ``file``, ``directory`` or ``date``.

        Returns:
            str: The rule line as written to the rule file.

        Raises:
            NotFoundError: If ``path`` does not exist.
            ValueError: If ``kind`` is not supported.
        """
        absolute = os.path.abspath(Path(path).expanduser())
        if not os.path.exists(absolute):
            raise NotFoundError(f"{absolute} does not exist")
        with self._lock:
            self._ensure_ready()
            removed = self._refresh_rules() or []
            rule = self._exclusions.add_rule(absolute, kind)
            removed.extend(self._purge((rule,)))
            self._repository.commit(
                StateDelta(
                    removals=removed,
                    history=self._history_state(),
                    rules=self._exclusions.render_lines(),
                )
            )
            LOGGER.info("Excluded %d catalog entries with %s", len(removed), rule.render())
            return rule.render()

    # ------------------------------------------------------------------ #
    # Statistics                                                         #
    # ------------------------------------------------------------------ #

    def get_stats(self) -> CatalogStats:
        with self._lock:
            self._ensure_ready()
            return self._catalog.stats()

    def get_display_histogram(self) -> List[Tuple[str, int]]:
        with self._lock:
            self._ensure_ready()
            return self._catalog.histogram()

    def level_populations(self) -> dict[int, int]:
        with self._lock:
            self._ensure_ready()
            return self._catalog.level_populations()

    def reset_counts(self) -> None:
        """Zero every display count and clear navigation history."""
        with self._lock:
            self._ensure_ready()
            self._catalog.reset_counts()
            self._history.clear()
            self._repository.save(self._build_snapshot())
            LOGGER.info("Reset display counts for %d entries", len(self._catalog))

    # ------------------------------------------------------------------ #
    # Settings                                                           #
    # ------------------------------------------------------------------ #

    @property
    def settings(self) -> PlaybackSettings:
        with self._lock:
            self._ensure_ready()
            return self._settings.model_copy()

    def get_setting(self, key: str) -> Optional[str]:
        with self._lock:
            self._ensure_ready()
            return self._settings_table.get(key)

    def list_settings(self) -> dict[str, str]:
        with self._lock:
            self._ensure_ready()
            return dict(self._settings_table)

    def save_setting(self, key: str, value: str) -> None:
        """Store a setting; known keys are validated against the typed model.

        Raises:
            SettingsError: If the value is invalid for a known key.
        """
        with self._lock:
            self._ensure_ready()
            validate_setting(key, value)
            table = dict(self._settings_table)
            table[key] = value
            self._settings = PlaybackSettings.from_table(table)
            table.update(self._settings.to_table())
            self._settings_table = table
            self._repository.commit(StateDelta(settings=dict(table)))

    # ------------------------------------------------------------------ #
    # Sharing                                                            #
    # ------------------------------------------------------------------ #

    def share(self, path: str | Path) -> Path:
        """Copy a media file into the share directory.

        A name collision appends a timestamp to the stem instead of
        overwriting.

        Returns:
            Path: The written copy.

        Raises:
            NotFoundError: If ``path`` is not an existing file.
        """
        source = Path(path).expanduser()
        if not source.is_file():
            raise NotFoundError(f"{source} does not exist")
        with self._lock:
            self._ensure_ready()
            directory = Path(self._settings.share_directory_path).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / source.name
        if target.exists():
            stamp = datetime.now().strftime("%Y%m%d%H%M%S")
            target = directory / f"{source.stem}_{stamp}{source.suffix}"
            counter = 1
            while target.exists():
                target = directory / f"{source.stem}_{stamp}_{counter}{source.suffix}"
                counter += 1
        shutil.copy2(source, target)
        LOGGER.info("Shared %s to %s", source, target)
        return target

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _ensure_ready(self) -> None:
        if not self._ready:
            self.restore()

    def _reset_memory(self) -> None:
        self._catalog = CatalogStore()
        self._history = NavigationHistory(self._config.history.capacity)
        self._selector = FairSelector(self._catalog, self._history, rng=self._rng)
        self._settings = PlaybackSettings()
        self._settings_table: dict[str, str] = self._settings.to_table()
        self._root: Optional[str] = None
        self._scans: List[ScanReport] = []

    def _start_fresh(self) -> None:
        self._reset_memory()
        self._exclusions.ensure_file()
        self._exclusions.reload()
        self._repository.save(self._build_snapshot())

    def _apply_snapshot(self, snapshot: EngineSnapshot) -> None:
        self._catalog = CatalogStore.load(record.to_entry() for record in snapshot.entries)
        self._history = NavigationHistory(
            self._config.history.capacity,
            snapshot.history.entries,
            snapshot.history.cursor,
            detached=snapshot.history.detached,
        )
        for path in set(self._history.entries):
            if path not in self._catalog:
                self._history.discard(path)
        self._selector = FairSelector(self._catalog, self._history, rng=self._rng)
        self._settings = self._parse_settings(snapshot.settings)
        self._settings_table = {**snapshot.settings, **self._settings.to_table()}
        self._root = snapshot.root
        self._scans = list(snapshot.scans)

        self._exclusions.ensure_file(snapshot.rules)
        self._exclusions.reload()
        # The rule file may have been edited while the engine was stopped.
        removed = self._purge(self._exclusions.rules)
        if removed or self._exclusions.render_lines() != snapshot.rules:
            self._repository.commit(
                StateDelta(
                    removals=removed,
                    history=self._history_state(),
                    rules=self._exclusions.render_lines(),
                )
            )

    def _parse_settings(self, table: dict[str, str]) -> PlaybackSettings:
        try:
            return PlaybackSettings.from_table(table)
        except SettingsError:
            valid: dict[str, str] = {}
            for key, value in table.items():
                try:
                    validate_setting(key, value)
                except SettingsError as exc:
                    LOGGER.warning("Ignoring stored setting %s=%r: %s", key, value, exc)
                    continue
                valid[key] = value
            return PlaybackSettings.from_table(valid)

    def _build_snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            root=self._root,
            entries=[EntryRecord.from_entry(entry) for entry in self._catalog.entries()],
            history=self._history_state(),
            rules=self._exclusions.render_lines(),
            settings=dict(self._settings_table),
            scans=list(self._scans),
        )

    def _history_state(self) -> HistoryState:
        return HistoryState(
            entries=self._history.entries,
            cursor=self._history.cursor,
            detached=self._history.detached,
        )

    def _refresh_rules(self) -> Optional[List[str]]:
        """Reload a changed rule file and drop entries it now excludes.

        Returns None when the rule file is unchanged.
        """
        if not self._exclusions.reload_if_changed():
            return None
        LOGGER.info("Exclusion rules changed on disk; re-evaluating catalog.")
        return self._purge(self._exclusions.rules)

    def _purge(self, rules: Iterable[ExclusionRule]) -> List[str]:
        rules = tuple(rules)
        if not rules:
            return []
        needs_date = any(rule.needs_capture_date for rule in rules)
        removed: List[str] = []
        for entry in self._catalog.entries():
            captured_on = None
            if needs_date:
                captured_on = self._exclusions.capture_date_for(entry)
            if any(rule.matches(entry.path, captured_on) for rule in rules):
                self._catalog.remove(entry.path)
                self._selector.forget(entry.path)
                removed.append(entry.path)
        return removed

    def _known_files(self) -> dict[str, KnownFile]:
        return {
            entry.path: KnownFile(entry.file_size, entry.modified_time, entry.captured_on)
            for entry in self._catalog.entries()
        }

    def _make_scanner(self) -> IncrementalScanner:
        scanning = self._config.scanning
        walker = MediaWalker(
            image_extensions=scanning.image_extensions,
            video_extensions=scanning.video_extensions,
            include_hidden=scanning.include_hidden,
        )
        return IncrementalScanner(walker, progress_every=scanning.progress_every)

    def _run_scan(self, task: ScanTask) -> None:
        try:
            with self._scan_lock:
                with self._lock:
                    self._exclusions.reload_if_changed()
                    known = self._known_files()
                    rules_before = self._exclusions.rules
                plan = self._make_scanner().scan(
                    task.root,
                    known,
                    self._exclusions,
                    progress=task.progress().publish,
                    cancel=task._cancel,
                )
                if plan.cancelled:
                    report = ScanReport(
                        root=str(plan.root),
                        duration_ms=plan.duration_ms,
                        cancelled=True,
                    )
                else:
                    report = self._commit_plan(plan, rules_before)
            task._finish(report)
        except Exception as exc:
            LOGGER.error("Scan of %s failed: %s", task.root, exc)
            task._fail(exc)
        finally:
            task.progress().close()

    def _commit_plan(self, plan: ScanPlan, rules_before: tuple[ExclusionRule, ...]) -> ScanReport:
        with self._lock:
            root = str(plan.root)
            full_save = False
            if (
                self._settings.reset_on_directory_change
                and self._root is not None
                and self._root != root
            ):
                LOGGER.info("Scan root changed from %s to %s; resetting display counts.", self._root, root)
                self._catalog.reset_counts()
                self._history.clear()
                full_save = True

            removed: List[str] = []
            for path in [*plan.deleted, *plan.excluded]:
                if self._catalog.remove(path) is not None:
                    self._selector.forget(path)
                    removed.append(path)

            touched: List[str] = []
            new_files = 0
            for discovered in [*plan.added, *plan.refreshed]:
                if self._catalog.upsert(
                    discovered.path,
                    discovered.size_bytes,
                    discovered.modified_time,
                    discovered.media_kind,
                ):
                    new_files += 1
                touched.append(discovered.path)

            excluded = plan.excluded_new + len(plan.excluded)
            self._exclusions.reload_if_changed()
            if self._exclusions.rules != rules_before:
                # Rules changed while walking; apply the current set before committing.
                purged = self._purge(self._exclusions.rules)
                excluded += len(purged)
                removed.extend(purged)
                touched = [path for path in touched if path in self._catalog]

            self._root = root
            self._settings_table[LAST_DIRECTORY_KEY] = root
            self._settings = PlaybackSettings.from_table(self._settings_table)

            report = ScanReport(
                root=root,
                total_files=len(self._catalog),
                new_files=new_files,
                deleted_files=len(plan.deleted),
                excluded_files=excluded,
                skipped_directories=list(plan.skipped_directories),
                duration_ms=plan.duration_ms,
            )
            self._scans.append(report)
            del self._scans[: -self._config.state.scan_history_limit]

            if full_save:
                self._repository.save(self._build_snapshot())
            else:
                records = []
                for path in touched:
                    entry = self._catalog.get(path)
                    if entry is not None:
                        records.append(EntryRecord.from_entry(entry))
                self._repository.commit(
                    StateDelta(
                        upserts=records,
                        removals=removed,
                        history=self._history_state(),
                        settings=dict(self._settings_table),
                        rules=self._exclusions.render_lines(),
                        root=root,
                        scan=report,
                    )
                )
            return report


__all__ = ["SlideshowEngine", "ScanTask", "RestoreOutcome", "RestoreStatus"]
