"""Directory scanning and catalog reconciliation."""

from .discovery import DEFAULT_IMAGE_EXTENSIONS, DEFAULT_VIDEO_EXTENSIONS, MediaWalker
from .models import DiscoveredFile, KnownFile, ScanPlan, ScanProgress, ScanReport
from .progress import ProgressStream
from .scanner import IncrementalScanner, ScanCancelled

__all__ = [
    "MediaWalker",
    "IncrementalScanner",
    "ScanCancelled",
    "ProgressStream",
    "DiscoveredFile",
    "KnownFile",
    "ScanPlan",
    "ScanProgress",
    "ScanReport",
    "DEFAULT_IMAGE_EXTENSIONS",
    "DEFAULT_VIDEO_EXTENSIONS",
]
