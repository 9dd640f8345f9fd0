"""
Engine error types.

Every error carries a stable ``code`` so the API layer can map it to a
status without string matching. Permission checks never raise these for a
plain "no"; they return a denial instead.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for engine errors."""

    code = "engine_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFound(EngineError):
    """Asset, user or company missing (or not visible to the caller)."""

    code = "not_found"


class Forbidden(EngineError):
    """Caller may see the resource but may not perform the action."""

    code = "forbidden"


class InvalidState(EngineError):
    """Transition attempted from a state that does not permit it."""

    code = "invalid_state"


class ValidationFailed(EngineError):
    """Malformed or missing input."""

    code = "validation_failed"

    def __init__(
        self,
        field: str,
        reason: str,
        errors: list[Any] | None = None,
    ) -> None:
        self.field = field
        self.reason = reason
        self.errors = errors or []
        super().__init__(reason)


class Conflict(EngineError):
    """A concurrent writer changed the asset first."""

    code = "conflict"


class StorageUnavailable(EngineError):
    """Object storage (or another collaborator) failed during reserve."""

    code = "storage_unavailable"
    retryable = True


class CommitFailed(EngineError):
    """
    A side-effecting step failed (transition, audit append).

    Never retried internally; the caller decides whether to retry the
    whole operation.
    """

    code = "commit_failed"
    retryable = False


class ImmutabilityViolation(EngineError):
    """Attempt to update or delete an audit entry."""

    code = "immutability_violation"


def asset_not_found() -> NotFound:
    """Same error for missing and invisible assets so existence does not leak."""
    return NotFound("Asset not found")
