"""Exception hierarchy for the guardian engine.

Not-found and integrity failures abort an operation and reach the caller
unchanged.  Per-name apply failures are accumulated into result objects
instead of being raised; :class:`PartialApplyFailure` exists for callers
that prefer an exception once a batch has finished.
"""

from __future__ import annotations


class GuardianError(Exception):
    """Base class for all guardian engine errors."""


class NotFoundError(GuardianError):
    """A requested record or configuration name does not exist."""


class SnapshotNotFoundError(NotFoundError):
    """Raised when a snapshot id has no stored record."""

    def __init__(self, snapshot_id: int) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class IntegrityCheckFailedError(GuardianError):
    """Raised when a snapshot payload does not match its stored hash."""

    def __init__(self, snapshot_id: int | None, message: str = "Snapshot integrity check failed") -> None:
        self.snapshot_id = snapshot_id
        super().__init__(message if snapshot_id is None else f"{message} (snapshot {snapshot_id})")


class SerializationError(GuardianError):
    """Raised when a payload cannot be encoded for storage."""


class PartialApplyFailure(GuardianError):
    """Some names in a batch failed while others were applied.

    Parameters
    ----------
    applied:
        Names written or deleted successfully.
    errors:
        Human-readable error message per failed name.
    """

    def __init__(self, applied: list[str], errors: list[str]) -> None:
        self.applied = list(applied)
        self.errors = list(errors)
        super().__init__(f"{len(errors)} operation(s) failed, {len(applied)} succeeded: " + "; ".join(errors[:5]))


class ConflictDetectedError(GuardianError):
    """Raised when blocking conflicts exist and the caller did not force the operation."""

    def __init__(self, conflicts: list) -> None:
        self.conflicts = list(conflicts)
        names = sorted({c.config for c in self.conflicts})
        super().__init__(f"{len(self.conflicts)} blocking conflict(s) for: {', '.join(names)}")


class StorageUnavailableError(GuardianError):
    """A configuration store could not be reached or refused an operation."""
