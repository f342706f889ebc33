"""Helpers for building media trees in tests."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import Image

_EXIF_IFD = 0x8769
_DATETIME_ORIGINAL = 0x9003
_DATETIME = 0x0132


def write_media(path: Path, payload: bytes = b"media", *, mtime: Optional[float] = None) -> Path:
    """Create a fake media file, optionally pinning its modification time.

    Args:
        path: Destination path; parent directories are created.
        payload: File contents.
        mtime: Modification time to apply.

    Returns:
        Path: The written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def write_jpeg(path: Path, *, taken: Optional[datetime] = None, use_original: bool = True) -> Path:
    """Create a small JPEG, optionally carrying an EXIF capture timestamp.

    Args:
        path: Destination path.
        taken: Capture timestamp to embed.
        use_original: Store it as ``DateTimeOriginal`` (True) or ``DateTime`` (False).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", (4, 4), color=(200, 30, 30))
    exif = Image.Exif()
    if taken is not None:
        stamp = taken.strftime("%Y:%m:%d %H:%M:%S")
        if use_original:
            exif[_EXIF_IFD] = {_DATETIME_ORIGINAL: stamp}
        else:
            exif[_DATETIME] = stamp
    image.save(path, format="JPEG", exif=exif.tobytes())
    return path
