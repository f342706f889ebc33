"""State management errors."""


class StateError(Exception):
    """Base exception for state repository operations."""


class MissingStateError(StateError):
    """Raised when no snapshot has been written yet."""


class PersistenceCorruptError(StateError):
    """Raised when a stored snapshot cannot be read or validated."""
