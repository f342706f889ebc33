"""Progress stream tests."""

import queue

import pytest

from fairshow.scanning import ProgressStream, ScanProgress


def test_stream_drops_oldest_updates_when_full() -> None:
    stream = ProgressStream(maxsize=2)
    for current in range(1, 6):
        stream.publish(current, 5)
    stream.close()

    updates = list(stream)

    assert updates[-1] == ScanProgress(5, 5)
    assert len(updates) <= 2
    assert stream.latest == ScanProgress(5, 5)


def test_get_times_out_then_reports_closed() -> None:
    stream = ProgressStream()

    with pytest.raises(queue.Empty):
        stream.get(timeout=0.01)

    stream.close()
    assert stream.get(timeout=0.01) is None
    assert stream.get(timeout=0.01) is None
    assert stream.closed


def test_publish_after_close_is_ignored() -> None:
    stream = ProgressStream()
    stream.close()
    stream.publish(1, 1)

    assert list(stream) == []
