class HealingError(RuntimeError):
    """Raised when selector healing fails."""


class SnapshotStorageError(HealingError):
    """Raised when the snapshot directory cannot be read or written."""
