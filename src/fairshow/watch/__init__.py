"""Directory watch mode."""

from .service import WatchService

__all__ = ["WatchService"]
