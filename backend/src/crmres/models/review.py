"""Review queue models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .base import ReviewReason, ReviewStatus


class ReviewQueueEntry(BaseModel):
    """A deal resolution that needs manual follow-up."""

    id: UUID
    deal_id: UUID
    reason: ReviewReason
    status: ReviewStatus = ReviewStatus.PENDING
    original_company: str | None = None
    original_contact_name: str | None = None
    original_contact_email: str | None = None
    suggested_company_id: UUID | None = None
    suggested_contact_id: UUID | None = None
    resolution_notes: str | None = None
    run_id: UUID | None = None
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ReviewStats(BaseModel):
    """Counts over the review queue."""

    total_pending: int = 0
    total_resolved: int = 0
    total_archived: int = 0
    by_reason: dict[str, int] = Field(default_factory=dict)
