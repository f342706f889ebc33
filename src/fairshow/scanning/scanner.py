"""Incremental scanner that diffs a directory tree against the catalog."""

from __future__ import annotations

import logging
import os
import stat as stat_module
import threading
import time
from pathlib import Path
from typing import Callable, Mapping, Optional

from fairshow.exclusion import ExclusionEngine

from .discovery import MediaWalker
from .models import DiscoveredFile, KnownFile, ScanPlan

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ScanCancelled(Exception):
    """Raised internally when a cooperative cancellation request is observed."""


class IncrementalScanner:
    """Walk a root directory and compute the catalog changes it implies.

    The scanner never mutates the catalog. It works from a detached
    ``path -> KnownFile`` view and returns a :class:`ScanPlan` that the owner
    applies atomically.
    """

    def __init__(self, walker: MediaWalker, *, progress_every: int = 100) -> None:
        """Initialize the scanner.

        Args:
            walker: File enumerator honoring extension and hidden-file filters.
            progress_every: Emit a progress update every N processed files.
        """
        self.walker = walker
        self.progress_every = max(1, progress_every)

    def scan(
        self,
        root: Path,
        known: Mapping[str, KnownFile],
        exclusions: ExclusionEngine,
        *,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ScanPlan:
        """Enumerate ``root`` and diff it against ``known``.

        Args:
            root: Directory to scan.
            known: Snapshot of the catalog keyed by absolute path.
            exclusions: Current exclusion rules.
            progress: Optional ``(current, total)`` callback. During the walk it
                receives running counts with ``total`` 0; classification then
                reports against the enumerated total.
            cancel: Event checked between files; when set, the returned plan
                is marked cancelled and carries no changes.

        Returns:
            ScanPlan: Changes to apply, or a cancelled plan.
        """
        started = time.monotonic()
        root = Path(os.path.abspath(root))
        plan = ScanPlan(root=root)

        try:
            candidates = self._enumerate(root, cancel, progress)
            plan.skipped_directories = list(self.walker.skipped_directories)
            total = len(candidates)
            LOGGER.info("Found %d candidate media files under %s", total, root)
            self._notify(progress, 0, total)

            seen: set[str] = set()
            for index, path in enumerate(candidates, start=1):
                self._check_cancel(cancel)
                discovered = self._inspect(path)
                if discovered is not None:
                    seen.add(path)
                    self._classify(discovered, known.get(path), exclusions, plan)
                if index % self.progress_every == 0 or index == total:
                    self._notify(progress, index, total)

            self._check_cancel(cancel)
            self._collect_deleted(root, known, seen, plan)
        except ScanCancelled:
            LOGGER.info("Scan of %s cancelled; no changes will be applied.", root)
            return ScanPlan(
                root=root,
                cancelled=True,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        plan.duration_ms = int((time.monotonic() - started) * 1000)
        LOGGER.info(
            "Scan of %s: %d eligible, %d new, %d deleted, %d excluded in %dms",
            root,
            plan.total_files,
            len(plan.added),
            len(plan.deleted),
            len(plan.excluded) + plan.excluded_new,
            plan.duration_ms,
        )
        return plan

    # Internal helpers -------------------------------------------------

    def _enumerate(
        self,
        root: Path,
        cancel: Optional[threading.Event],
        progress: Optional[ProgressCallback],
    ) -> list[str]:
        # While the walk runs the total is unknown and reported as 0.
        candidates: list[str] = []
        for path in self.walker.walk(root):
            if len(candidates) % 1000 == 0:
                self._check_cancel(cancel)
            candidates.append(path)
            if len(candidates) % self.progress_every == 0:
                self._notify(progress, len(candidates), 0)
        return candidates

    def _inspect(self, path: str) -> Optional[DiscoveredFile]:
        try:
            info = os.stat(path, follow_symlinks=False)
        except OSError as exc:
            LOGGER.warning("Cannot stat %s: %s", path, exc)
            return None
        if not stat_module.S_ISREG(info.st_mode):
            return None
        kind = self.walker.media_kind(path)
        if kind is None:
            return None
        return DiscoveredFile(
            path=path,
            size_bytes=info.st_size,
            modified_time=info.st_mtime,
            media_kind=kind,
        )

    def _classify(
        self,
        discovered: DiscoveredFile,
        previous: Optional[KnownFile],
        exclusions: ExclusionEngine,
        plan: ScanPlan,
    ) -> None:
        unchanged = (
            previous is not None
            and previous.size_bytes == discovered.size_bytes
            and previous.modified_time == discovered.modified_time
        )
        cached_date = previous.captured_on if unchanged and previous is not None else None
        if exclusions.is_path_excluded(discovered.path, discovered.modified_time, cached_date):
            if previous is None:
                plan.excluded_new += 1
            else:
                plan.excluded.append(discovered.path)
            return

        plan.total_files += 1
        if previous is None:
            plan.added.append(discovered)
        elif not unchanged:
            plan.refreshed.append(discovered)

    def _collect_deleted(
        self,
        root: Path,
        known: Mapping[str, KnownFile],
        seen: set[str],
        plan: ScanPlan,
    ) -> None:
        skipped = [directory.rstrip(os.sep) + os.sep for directory in plan.skipped_directories]
        for path in known:
            if path in seen:
                continue
            if any(path.startswith(prefix) for prefix in skipped):
                # Unreadable subtree: keep what we knew rather than report a deletion.
                plan.total_files += 1
                continue
            plan.deleted.append(path)

    def _check_cancel(self, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise ScanCancelled()

    def _notify(self, progress: Optional[ProgressCallback], current: int, total: int) -> None:
        if progress is None:
            return
        try:
            progress(current, total)
        except Exception as exc:  # pragma: no cover - progress is best effort
            LOGGER.debug("Progress callback failed: %s", exc)


__all__ = ["IncrementalScanner", "ScanCancelled", "ProgressCallback"]
