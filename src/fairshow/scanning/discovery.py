"""Media file discovery."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Collection, Iterator, List

from fairshow.catalog.models import MediaKind
from fairshow.errors import ScanIOError

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "bmp", "webp", "tiff", "tif", "heic")
DEFAULT_VIDEO_EXTENSIONS = ("mp4", "mov", "m4v", "webm", "avi", "mkv")


def _normalize_extensions(extensions: Collection[str]) -> frozenset[str]:
    return frozenset(ext.lower().lstrip(".") for ext in extensions if ext.strip("."))


class MediaWalker:
    """Enumerate supported media files below a root directory.

    Unreadable directories are recorded in ``skipped_directories`` instead of
    aborting the walk.
    """

    def __init__(
        self,
        *,
        image_extensions: Collection[str] = DEFAULT_IMAGE_EXTENSIONS,
        video_extensions: Collection[str] = DEFAULT_VIDEO_EXTENSIONS,
        include_hidden: bool = False,
    ) -> None:
        self.image_extensions = _normalize_extensions(image_extensions)
        self.video_extensions = _normalize_extensions(video_extensions)
        self.include_hidden = include_hidden
        self.skipped_directories: List[str] = []

    def media_kind(self, path: str | Path) -> MediaKind | None:
        """Return the media kind for a path, or None when unsupported."""
        suffix = os.path.splitext(os.fspath(path))[1].lower().lstrip(".")
        if suffix in self.image_extensions:
            return "image"
        if suffix in self.video_extensions:
            return "video"
        return None

    def walk(self, root: Path) -> Iterator[str]:
        """Yield absolute paths of supported files below ``root``.

        Args:
            root: Directory to enumerate.

        Raises:
            ScanIOError: If the root itself is missing or not a directory.
        """
        self.skipped_directories = []
        if not root.is_dir():
            raise ScanIOError(f"Not a readable directory: {root}")

        def _on_error(exc: OSError) -> None:
            location = exc.filename or str(root)
            LOGGER.warning("Skipping unreadable directory %s: %s", location, exc.strerror or exc)
            self.skipped_directories.append(os.path.normpath(location))

        for current, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
            if not self.include_hidden:
                dirnames[:] = [name for name in dirnames if not name.startswith(".")]
            dirnames.sort(key=str.lower)
            for name in sorted(filenames, key=str.lower):
                if not self.include_hidden and name.startswith("."):
                    continue
                if self.media_kind(name) is None:
                    continue
                yield os.path.join(current, name)


__all__ = ["MediaWalker", "DEFAULT_IMAGE_EXTENSIONS", "DEFAULT_VIDEO_EXTENSIONS"]
