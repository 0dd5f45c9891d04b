"""Review queue API endpoints for CRMRES."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..models.base import ReviewReason
from ..models.review import ReviewQueueEntry, ReviewStats
from ..review.queue import ReviewQueue
from . import NotFoundError, PaginatedResponse

router = APIRouter(prefix="/review", tags=["Review"])


def get_review_queue() -> ReviewQueue:
    """Review queue bound to the application database."""
    return ReviewQueue()


# =========================
# Request Models
# =========================


class ResolveEntryRequest(BaseModel):
    """Manual resolution of a review entry."""

    company_id: UUID
    contact_id: UUID
    resolved_by: str | None = None
    notes: str | None = None


class ArchiveEntryRequest(BaseModel):
    """Dismissal of a review entry."""

    notes: str | None = None


# =========================
# Entries
# =========================


@router.get("/entries", response_model=PaginatedResponse[ReviewQueueEntry])
def list_entries(
    reason: ReviewReason | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    queue: ReviewQueue = Depends(get_review_queue),
) -> PaginatedResponse[ReviewQueueEntry]:
    """List pending review entries, newest first."""
    entries, total = queue.get_pending(limit=limit, offset=offset, reason=reason)
    return PaginatedResponse(results=entries, total=total, limit=limit, offset=offset)


@router.get("/entries/{entry_id}", response_model=ReviewQueueEntry)
def get_entry(
    entry_id: UUID,
    queue: ReviewQueue = Depends(get_review_queue),
) -> ReviewQueueEntry:
    """Get a single review entry."""
    entry = queue.get_entry(entry_id)
    if entry is None:
        raise NotFoundError("Review entry", entry_id)
    return entry


@router.post("/entries/{entry_id}/resolve", response_model=ReviewQueueEntry)
def resolve_entry(
    entry_id: UUID,
    request: ResolveEntryRequest,
    queue: ReviewQueue = Depends(get_review_queue),
) -> ReviewQueueEntry:
    """Resolve an entry by assigning the deal's company and contact."""
    return queue.resolve_entry(
        entry_id,
        company_id=request.company_id,
        contact_id=request.contact_id,
        resolved_by=request.resolved_by,
        notes=request.notes,
    )


@router.post("/entries/{entry_id}/archive", response_model=ReviewQueueEntry)
def archive_entry(
    entry_id: UUID,
    request: ArchiveEntryRequest | None = None,
    queue: ReviewQueue = Depends(get_review_queue),
) -> ReviewQueueEntry:
    """Dismiss an entry without resolving the deal."""
    return queue.archive_entry(entry_id, notes=request.notes if request else None)


# =========================
# Stats
# =========================


@router.get("/stats", response_model=ReviewStats)
def review_stats(queue: ReviewQueue = Depends(get_review_queue)) -> ReviewStats:
    """Get review queue statistics."""
    return queue.stats()
