"""Domain models for CRMRES."""

from .base import ResolutionMode, ResolutionState, ReviewReason, ReviewStatus, RunStatus
from .entities import Company, Contact, Deal, DealCreate, row_to_model
from .events import ActivityType, ActivityWrite, ContactIdentifierType, ContactWrite
from .review import ReviewQueueEntry, ReviewStats

__all__ = [
    # Base
    "ResolutionMode",
    "ResolutionState",
    "ReviewReason",
    "ReviewStatus",
    "RunStatus",
    # Entities
    "Company",
    "Contact",
    "Deal",
    "DealCreate",
    "row_to_model",
    # Events
    "ActivityType",
    "ActivityWrite",
    "ContactIdentifierType",
    "ContactWrite",
    # Review
    "ReviewQueueEntry",
    "ReviewStats",
]
