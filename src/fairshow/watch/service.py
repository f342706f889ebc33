"""Filesystem watch service that triggers incremental rescans."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from fairshow.engine import SlideshowEngine
from fairshow.errors import FairshowError
from fairshow.scanning import ScanReport
from fairshow.scanning.discovery import MediaWalker

LOGGER = logging.getLogger(__name__)

_STOP = None


class WatchService:
    """Keep the catalog in sync with a directory while the process runs.

    Filesystem events for supported media are coalesced: a rescan runs once
    no new event has arrived for the debounce interval. The scan itself is
    incremental, so a burst of events costs one walk.
    """

    def __init__(
        self,
        engine: SlideshowEngine,
        root: Path,
        *,
        debounce_seconds: Optional[float] = None,
        recursive: bool = True,
    ) -> None:
        """Initialize the watch service.

        Args:
            engine: Engine owning the catalog.
            root: Directory to monitor and rescan.
            debounce_seconds: Quiet period before a rescan; defaults to the
                configured ``scanning.watch_debounce_seconds``.
            recursive: Whether to monitor subdirectories.
        """
        self._engine = engine
        # Same normalization as SlideshowEngine.start_scan; symlinks stay unresolved.
        self._root = Path(os.path.abspath(root.expanduser()))
        self._recursive = recursive
        scanning = engine.config.scanning
        self._walker = MediaWalker(
            image_extensions=scanning.image_extensions,
            video_extensions=scanning.video_extensions,
            include_hidden=scanning.include_hidden,
        )
        debounce = scanning.watch_debounce_seconds if debounce_seconds is None else debounce_seconds
        self._debounce_seconds = max(0.1, debounce)
        self._observer: Optional[Observer] = None
        self._queue: queue.Queue[Optional[Path]] = queue.Queue()
        self._stop_event = threading.Event()

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def process_once(self) -> ScanReport:
        """Rescan the root immediately.

        Returns:
            ScanReport: The committed scan.
        """
        return self._engine.scan(self._root)

    def watch(self, callback: Callable[[ScanReport], None]) -> None:
        """Run an initial scan, then rescan on filesystem changes until stopped.

        Args:
            callback: Callable invoked with each committed scan report.
        """
        if self._observer is not None:
            raise RuntimeError("WatchService is already running.")

        self._stop_event.clear()
        callback(self.process_once())

        self._observer = Observer()
        handler = _WatchEventHandler(self._queue, self._walker, self._engine.state_dir)
        self._observer.schedule(handler, str(self._root), recursive=self._recursive)
        self._observer.start()
        LOGGER.info("Watching %s for changes.", self._root)
        try:
            self._run_loop(callback)
        finally:
            self.stop()

    def stop(self) -> None:
        """Terminate the watch loop and release the observer."""
        self._stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        # Unblock the queue so the loop can exit.
        self._queue.put(_STOP)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _run_loop(self, callback: Callable[[ScanReport], None]) -> None:
        pending = 0
        flush_deadline: Optional[float] = None

        while not self._stop_event.is_set():
            timeout: Optional[float] = None
            if flush_deadline is not None:
                timeout = max(0.0, flush_deadline - time.monotonic())

            try:
                path = self._queue.get(timeout=timeout)
            except queue.Empty:
                if pending:
                    LOGGER.info("Rescanning %s after %d change(s).", self._root, pending)
                    self._rescan(callback)
                    pending = 0
                    flush_deadline = None
                continue

            if path is _STOP:
                break

            pending += 1
            flush_deadline = time.monotonic() + self._debounce_seconds

    def _rescan(self, callback: Callable[[ScanReport], None]) -> None:
        try:
            report = self.process_once()
        except (OSError, FairshowError) as exc:
            LOGGER.error("Rescan of %s failed: %s", self._root, exc)
            return
        callback(report)


class _WatchEventHandler(FileSystemEventHandler):
    """Forward relevant filesystem events into the service queue."""

    def __init__(
        self,
        queue_handle: queue.Queue[Optional[Path]],
        walker: MediaWalker,
        state_dir: Path,
    ) -> None:
        self._queue = queue_handle
        self._walker = walker
        self._state_dir = Path(os.path.abspath(state_dir.expanduser()))

    def on_created(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._enqueue(event.src_path, False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - watchdog-specific
        self._enqueue(event.src_path, event.is_directory)
        self._enqueue(event.dest_path, event.is_directory)

    def _enqueue(self, raw_path: str | bytes, is_directory: bool) -> None:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if self._state_dir == path or self._state_dir in path.parents:
            return
        # Directory moves and deletions can hide many media files.
        if not is_directory and self._walker.media_kind(path) is None:
            return
        self._queue.put(path)


__all__ = ["WatchService"]
