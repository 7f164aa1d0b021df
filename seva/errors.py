"""Error taxonomy for scheduling operations."""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for all errors raised by scheduling operations."""

    retryable = False


class NotFoundError(SchedulingError, LookupError):
    """A booking, item, assignment or staff member does not exist."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class ValidationError(SchedulingError, ValueError):
    """Malformed input."""


class BusinessRuleViolation(SchedulingError, ValueError):
    """A hard scheduling rule would be broken. `reason` is a short machine-readable tag."""

    def __init__(self, message: str, reason: str = "rule_violation"):
        self.reason = reason
        super().__init__(message)


class PermissionDenied(SchedulingError):
    """The acting role may not perform this operation."""


class ConcurrencyConflict(SchedulingError):
    """The store rejected a write because a concurrent edit got there first.

    Callers should re-read and retry; the core never retries on its own.
    """

    retryable = True


class StorageError(SchedulingError, RuntimeError):
    """Unexpected persistence failure. The transaction has been rolled back."""
