"""Base enums shared across CRMRES models."""

from enum import Enum


class ResolutionMode(str, Enum):
    """Who is driving a resolution call.

    Threaded through every resolver call so bulk and incremental writers
    can be told apart without shared process state.
    """

    BATCH = "batch"
    INCREMENTAL = "incremental"


class ResolutionState(str, Enum):
    """Resolution state of a deal."""

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    REVIEW_PENDING = "review_pending"


class ReviewReason(str, Enum):
    """Why a deal could not be resolved automatically."""

    NO_EMAIL = "no_email"
    INVALID_EMAIL = "invalid_email"
    ENTITY_CREATION_FAILED = "entity_creation_failed"
    FUZZY_MATCH_UNCERTAINTY = "fuzzy_match_uncertainty"


class ReviewStatus(str, Enum):
    """Triage status of a review queue entry."""

    PENDING = "pending"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class RunStatus(str, Enum):
    """Status of a resolution run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
