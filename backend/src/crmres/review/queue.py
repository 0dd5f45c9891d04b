"""Deal review queue.

Holds reason-coded deal resolutions that need manual follow-up. A deal
has at most one pending entry; flagging it again refreshes that entry.

Lifecycle:
- pending: created by a bulk run
- resolved: an operator (or a later run) supplied both entity ids
- archived: dismissed without resolution
"""

from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.orm import Session

from ..db import SessionScope, companies, contacts, deals, get_db_session, review_queue, utcnow
from ..logging import get_context_logger, log_review_flagged
from ..models.base import ResolutionState, ReviewReason, ReviewStatus
from ..models.entities import Deal, row_to_model
from ..models.review import ReviewQueueEntry, ReviewStats

logger = get_context_logger(__name__)


class ReviewEntryNotFoundError(LookupError):
    """No review entry with the given ID."""

    def __init__(self, entry_id: UUID):
        self.entry_id = entry_id
        super().__init__(f"Review entry not found: {entry_id}")


class ReviewTransitionError(ValueError):
    """The entry is not in a state that allows the requested action."""


class ReviewQueue:
    """Queue of deals awaiting manual resolution."""

    def __init__(self, session_scope: SessionScope | None = None):
        self._session_scope = session_scope or get_db_session

    # =========================
    # Flagging
    # =========================

    def flag(
        self,
        session: Session,
        deal: Deal,
        reason: ReviewReason,
        notes: str | None = None,
        suggested_company_id: UUID | None = None,
        suggested_contact_id: UUID | None = None,
        run_id: UUID | None = None,
    ) -> UUID:
        """Record a deal for review inside the caller's transaction.

        Args:
            session: Open session (the caller owns the transaction)
            deal: The deal that could not be resolved
            reason: Reason code
            notes: Free-text details
            suggested_company_id: Company resolved before the failure, if any
            suggested_contact_id: Contact resolved before the failure, if any
            run_id: Bulk run that flagged the deal

        Returns:
            Review entry ID
        """
        values = {
            "reason": reason.value,
            "original_company": deal.company,
            "original_contact_name": deal.contact_name,
            "original_contact_email": deal.contact_email,
            "suggested_company_id": suggested_company_id,
            "suggested_contact_id": suggested_contact_id,
            "resolution_notes": notes,
            "run_id": run_id,
        }

        existing_id = session.execute(
            sa.select(review_queue.c.id).where(
                review_queue.c.deal_id == deal.id,
                review_queue.c.status == ReviewStatus.PENDING.value,
            )
        ).scalar_one_or_none()

        if existing_id is not None:
            session.execute(
                sa.update(review_queue).where(review_queue.c.id == existing_id).values(**values)
            )
            entry_id = existing_id
        else:
            entry_id = uuid4()
            session.execute(
                sa.insert(review_queue).values(
                    id=entry_id,
                    deal_id=deal.id,
                    status=ReviewStatus.PENDING.value,
                    created_at=utcnow(),
                    **values,
                )
            )

        log_review_flagged(str(deal.id), reason.value, str(run_id) if run_id else None)
        return entry_id

    def close_for_deal(self, session: Session, deal_id: UUID, notes: str | None = None) -> int:
        """Mark a deal's pending entries resolved after automatic success."""
        result = session.execute(
            sa.update(review_queue)
            .where(
                review_queue.c.deal_id == deal_id,
                review_queue.c.status == ReviewStatus.PENDING.value,
            )
            .values(
                status=ReviewStatus.RESOLVED.value,
                resolved_at=utcnow(),
                resolved_by="system",
                resolution_notes=notes,
            )
        )
        return result.rowcount

    # =========================
    # Read API
    # =========================

    def get_pending(
        self,
        limit: int = 20,
        offset: int = 0,
        reason: ReviewReason | None = None,
    ) -> tuple[list[ReviewQueueEntry], int]:
        """Get pending entries, newest first.

        Args:
            limit: Maximum entries to return
            offset: Offset for pagination
            reason: Only entries with this reason code

        Returns:
            Tuple of (entries, total pending matching the filter)
        """
        filters = [review_queue.c.status == ReviewStatus.PENDING.value]
        if reason is not None:
            filters.append(review_queue.c.reason == reason.value)

        with self._session_scope() as session:
            total = session.execute(
                sa.select(sa.func.count()).select_from(review_queue).where(*filters)
            ).scalar_one()

            rows = session.execute(
                sa.select(review_queue)
                .where(*filters)
                .order_by(review_queue.c.created_at.desc(), review_queue.c.id)
                .limit(limit)
                .offset(offset)
            ).all()

        return [row_to_model(ReviewQueueEntry, row) for row in rows], total

    def get_entry(self, entry_id: UUID) -> ReviewQueueEntry | None:
        """Get a single entry by ID."""
        with self._session_scope() as session:
            row = session.execute(
                sa.select(review_queue).where(review_queue.c.id == entry_id)
            ).first()
        return row_to_model(ReviewQueueEntry, row) if row is not None else None

    def stats(self) -> ReviewStats:
        """Count entries by status and pending entries by reason."""
        stats = ReviewStats()
        with self._session_scope() as session:
            by_status = session.execute(
                sa.select(review_queue.c.status, sa.func.count()).group_by(review_queue.c.status)
            ).all()
            by_reason = session.execute(
                sa.select(review_queue.c.reason, sa.func.count())
                .where(review_queue.c.status == ReviewStatus.PENDING.value)
                .group_by(review_queue.c.reason)
            ).all()

        counts = {status: count for status, count in by_status}
        stats.total_pending = counts.get(ReviewStatus.PENDING.value, 0)
        stats.total_resolved = counts.get(ReviewStatus.RESOLVED.value, 0)
        stats.total_archived = counts.get(ReviewStatus.ARCHIVED.value, 0)
        stats.by_reason = {reason: count for reason, count in by_reason}
        return stats

    # =========================
    # Triage
    # =========================

    def resolve_entry(
        self,
        entry_id: UUID,
        company_id: UUID,
        contact_id: UUID,
        resolved_by: str | None = None,
        notes: str | None = None,
    ) -> ReviewQueueEntry:
        """Manually resolve a pending entry.

        Writes the chosen company and contact onto the deal, marks the deal
        resolved, and closes the entry.

        Raises:
            ReviewEntryNotFoundError: unknown entry
            ReviewTransitionError: entry is not pending, or an ID is unknown
        """
        with self._session_scope() as session:
            entry = self._load_pending(session, entry_id)

            company_exists = session.execute(
                sa.select(companies.c.id).where(companies.c.id == company_id)
            ).scalar_one_or_none()
            contact_exists = session.execute(
                sa.select(contacts.c.id).where(contacts.c.id == contact_id)
            ).scalar_one_or_none()
            if company_exists is None or contact_exists is None:
                raise ReviewTransitionError(
                    f"Unknown company or contact for review entry {entry_id}"
                )

            now = utcnow()
            session.execute(
                sa.update(deals)
                .where(deals.c.id == entry.deal_id)
                .values(
                    company_id=company_id,
                    primary_contact_id=contact_id,
                    resolution_state=ResolutionState.RESOLVED.value,
                    updated_at=now,
                )
            )
            session.execute(
                sa.update(review_queue)
                .where(review_queue.c.id == entry_id)
                .values(
                    status=ReviewStatus.RESOLVED.value,
                    resolved_at=now,
                    resolved_by=resolved_by,
                    resolution_notes=notes if notes is not None else entry.resolution_notes,
                )
            )

        logger.info(
            f"Review entry {entry_id} resolved",
            extra={"deal_id": str(entry.deal_id), "resolved_by": resolved_by},
        )
        return self.get_entry(entry_id)

    def archive_entry(self, entry_id: UUID, notes: str | None = None) -> ReviewQueueEntry:
        """Dismiss a pending entry without resolving the deal."""
        with self._session_scope() as session:
            entry = self._load_pending(session, entry_id)
            session.execute(
                sa.update(review_queue)
                .where(review_queue.c.id == entry_id)
                .values(
                    status=ReviewStatus.ARCHIVED.value,
                    resolution_notes=notes if notes is not None else entry.resolution_notes,
                )
            )

        logger.info(f"Review entry {entry_id} archived", extra={"deal_id": str(entry.deal_id)})
        return self.get_entry(entry_id)

    def _load_pending(self, session: Session, entry_id: UUID) -> ReviewQueueEntry:
        row = session.execute(
            sa.select(review_queue).where(review_queue.c.id == entry_id)
        ).first()
        if row is None:
            raise ReviewEntryNotFoundError(entry_id)
        entry = row_to_model(ReviewQueueEntry, row)
        if entry.status != ReviewStatus.PENDING:
            raise ReviewTransitionError(
                f"Review entry {entry_id} is {entry.status.value}, not pending"
            )
        return entry
