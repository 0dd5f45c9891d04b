"""Resolution error taxonomy.

Every per-record error carries the review reason it is recorded under
when it reaches the bulk orchestrator.
"""

from typing import Any

from ..models.base import ReviewReason


class ResolutionError(Exception):
    """Base class for errors raised while resolving one record."""

    reason: ReviewReason = ReviewReason.ENTITY_CREATION_FAILED

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NoEmailError(ResolutionError):
    """The record carries no email identifier at all."""

    reason = ReviewReason.NO_EMAIL


class InvalidEmailError(ResolutionError):
    """The email identifier is malformed."""

    reason = ReviewReason.INVALID_EMAIL


class EntityCreationFailedError(ResolutionError):
    """A create step failed even after the race re-query."""

    reason = ReviewReason.ENTITY_CREATION_FAILED


class FuzzyMatchUncertainError(ResolutionError):
    """No confident target was found for an orphan contact."""

    reason = ReviewReason.FUZZY_MATCH_UNCERTAINTY


class LockTimeoutError(EntityCreationFailedError):
    """A per-key resolution lock could not be acquired in time."""


class BulkRunInProgressError(Exception):
    """Another bulk resolution run currently holds the lease."""

    def __init__(self, run_id: str | None = None):
        self.run_id = run_id
        super().__init__(
            f"Bulk resolution run already in progress: {run_id or 'unknown'}"
        )
