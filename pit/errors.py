"""Exceptions raised by the tracker's storage and service layers."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker failures."""


class NotFoundError(TrackerError):
    """Raised when a project, issue or task does not exist."""


class ConflictError(TrackerError):
    """Raised when a write was based on a stale copy of a record.

    The caller should reload the record and resubmit; retrying the same
    write would overwrite newer data.
    """

    def __init__(self, kind: str, record_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"{kind} '{record_id}' changed since it was loaded "
            f"(version {expected}, now {actual}). Reload and try again."
        )
        self.kind = kind
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


class QueryTimeout(TrackerError):
    """Raised when a read takes longer than the configured timeout."""


__all__ = ["TrackerError", "NotFoundError", "ConflictError", "QueryTimeout"]
