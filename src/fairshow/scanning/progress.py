"""Best-effort progress stream from a background scan to its caller."""

from __future__ import annotations

import queue
import threading
from typing import Iterator, Optional

from .models import ScanProgress

_CLOSED = object()


class ProgressStream:
    """Bounded, non-blocking channel of scan progress updates.

    Producers never block: when the buffer is full the oldest pending update
    is dropped, so slow consumers only ever see coalesced progress.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max(2, maxsize))
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._latest: Optional[ScanProgress] = None

    @property
    def latest(self) -> Optional[ScanProgress]:
        return self._latest

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def publish(self, current: int, total: int) -> None:
        if self._closed.is_set():
            return
        update = ScanProgress(current, total)
        self._latest = update
        self._offer(update)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._offer(_CLOSED)

    def get(self, timeout: float | None = None) -> Optional[ScanProgress]:
        """Return the next update, or None once the stream is closed and drained.

        Raises:
            queue.Empty: If no update arrives within ``timeout``.
        """
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[ScanProgress]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item

    def _offer(self, item: object) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(item)
                    return
                except queue.Full:
                    try:
                        dropped = self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    if dropped is _CLOSED:
                        # Keep the terminator; drop the new update instead.
                        self._queue.put_nowait(_CLOSED)
                        return


__all__ = ["ProgressStream", "ScanProgress"]
