"""Engine-level errors surfaced to presentation callers."""


class FairshowError(Exception):
    """Base exception for playlist engine operations."""


class NotFoundError(FairshowError):
    """Raised when a mutation references a path the catalog does not know."""


class EmptyCatalogError(FairshowError):
    """Raised when a draw is requested but no eligible items remain."""


class NoHistoryError(FairshowError):
    """Raised when backward navigation has nothing prior to return to."""


class ScanIOError(FairshowError):
    """Raised (and recorded) when a subtree cannot be read during a scan."""
