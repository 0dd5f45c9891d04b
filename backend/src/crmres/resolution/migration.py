"""Bulk resolution of historical deals.

Iterates deals lacking resolved entity references, newest first, and for
each one runs domain classification, company resolution, and contact
resolution before writing the resolved IDs back onto the deal.

Failure isolation: any error while resolving one deal is caught, the deal
is left without resolved IDs, and a review queue entry records why. A
single failure never aborts the batch.

Mutual exclusion: the run holds the bulk lease for its whole duration so
incremental hooks defer their writes; the lease is released in ``finally``.
"""

import time
from typing import Any
from uuid import UUID

import sqlalchemy as sa
from pydantic import BaseModel, Field

from ..config import get_settings
from ..db import SessionScope, contacts, deals, get_db_session, utcnow
from ..logging import get_context_logger, log_run_complete, log_run_start
from ..models.base import ResolutionMode, ResolutionState, ReviewReason, RunStatus
from ..models.entities import Deal, row_to_model
from ..review.queue import ReviewQueue
from .company import CompanyResolver
from .contact import ContactResolver
from .domains import classify, is_valid_email, normalize_email
from .errors import EntityCreationFailedError, InvalidEmailError, NoEmailError, ResolutionError
from .lease import BulkRunLease
from .locks import KeyedLock, get_default_locks

logger = get_context_logger(__name__)


class RunFilter(BaseModel):
    """Which deals a bulk run considers."""

    owner_id: str | None = None
    limit: int | None = Field(default=None, ge=1)
    deal_ids: list[UUID] | None = None


class FlaggedDeal(BaseModel):
    """A deal the run could not resolve."""

    deal_id: UUID
    entry_id: UUID | None = None
    reason: ReviewReason
    notes: str | None = None


class RunResult(BaseModel):
    """Aggregate outcome of a bulk run."""

    run_id: UUID
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    review_entries: list[FlaggedDeal] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def total_processed(self) -> int:
        return self.success_count + self.error_count


class DealOutcome(BaseModel):
    """Resolved IDs for one deal."""

    company_id: UUID
    contact_id: UUID


class MigrationOrchestrator:
    """Resolve companies and contacts for historical deals in bulk."""

    def __init__(
        self,
        session_scope: SessionScope | None = None,
        locks: KeyedLock | None = None,
        company_resolver: CompanyResolver | None = None,
        contact_resolver: ContactResolver | None = None,
        review_queue: ReviewQueue | None = None,
        lease: BulkRunLease | None = None,
        batch_size: int | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            session_scope: Callable returning a transactional session context
            locks: Per-key lock registry shared with the resolvers
            company_resolver: Company resolver (built from the scope if omitted)
            contact_resolver: Contact resolver (built from the scope if omitted)
            review_queue: Review queue (built from the scope if omitted)
            lease: Bulk-run lease (built from the scope if omitted)
            batch_size: Deals loaded per page
        """
        self._session_scope = session_scope or get_db_session
        locks = locks or get_default_locks()
        self.company_resolver = company_resolver or CompanyResolver(self._session_scope, locks)
        self.contact_resolver = contact_resolver or ContactResolver(self._session_scope, locks)
        self.review_queue = review_queue or ReviewQueue(self._session_scope)
        self.lease = lease or BulkRunLease(self._session_scope)
        self.batch_size = batch_size or get_settings().bulk_batch_size

    # =========================
    # Selection
    # =========================

    def find_pending_deal_ids(self, run_filter: RunFilter) -> list[UUID]:
        """IDs of deals lacking a company or contact reference, newest first."""
        query = (
            sa.select(deals.c.id)
            .where(sa.or_(deals.c.company_id.is_(None), deals.c.primary_contact_id.is_(None)))
            .order_by(deals.c.created_at.desc(), deals.c.id)
        )
        if run_filter.owner_id is not None:
            query = query.where(deals.c.owner_id == run_filter.owner_id)
        if run_filter.deal_ids:
            query = query.where(deals.c.id.in_(run_filter.deal_ids))
        if run_filter.limit is not None:
            query = query.limit(run_filter.limit)

        with self._session_scope() as session:
            return list(session.execute(query).scalars().all())

    def _load_deals(self, deal_ids: list[UUID]) -> list[Deal]:
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(deals)
                .where(deals.c.id.in_(deal_ids))
                .order_by(deals.c.created_at.desc(), deals.c.id)
            ).all()
        return [row_to_model(Deal, row) for row in rows]

    # =========================
    # Per-deal resolution
    # =========================

    def resolve_deal(self, deal: Deal, progress: dict[str, Any] | None = None) -> DealOutcome:
        """Resolve one deal's company and contact.

        Args:
            deal: The deal to resolve
            progress: Receives IDs resolved so far, for review suggestions

        Raises:
            ResolutionError: the deal cannot be resolved automatically
        """
        progress = progress if progress is not None else {}

        email = normalize_email(deal.contact_email)
        if email is None:
            raise NoEmailError("Deal has no contact email")
        if not is_valid_email(email):
            raise InvalidEmailError(
                f"Deal contact email is malformed: {deal.contact_email!r}",
                details={"email": deal.contact_email},
            )

        domain = classify(email)
        company_id = deal.company_id or self.company_resolver.resolve(
            domain, deal.company, deal.owner_id, ResolutionMode.BATCH
        )
        progress["company_id"] = company_id

        # Only a corporate domain ties the contact to the company automatically
        contact_company = company_id if domain else None
        contact_id = deal.primary_contact_id or self.contact_resolver.resolve(
            email, deal.contact_name, contact_company, deal.owner_id, ResolutionMode.BATCH
        )
        progress["contact_id"] = contact_id

        if company_id is None:
            company_id = self._contact_company(contact_id)
            progress["company_id"] = company_id

        if company_id is None:
            raise EntityCreationFailedError(
                "No company name or corporate domain to resolve a company from",
                details={"email": email},
            )

        return DealOutcome(company_id=company_id, contact_id=contact_id)

    def _contact_company(self, contact_id: UUID) -> UUID | None:
        with self._session_scope() as session:
            return session.execute(
                sa.select(contacts.c.company_id).where(contacts.c.id == contact_id)
            ).scalar_one_or_none()

    def _set_state(self, deal_id: UUID, state: ResolutionState) -> None:
        with self._session_scope() as session:
            session.execute(
                sa.update(deals)
                .where(deals.c.id == deal_id)
                .values(resolution_state=state.value, updated_at=utcnow())
            )

    def _write_back(self, deal: Deal, outcome: DealOutcome) -> None:
        with self._session_scope() as session:
            session.execute(
                sa.update(deals)
                .where(deals.c.id == deal.id)
                .values(
                    company_id=outcome.company_id,
                    primary_contact_id=outcome.contact_id,
                    resolution_state=ResolutionState.RESOLVED.value,
                    updated_at=utcnow(),
                )
            )
            self.review_queue.close_for_deal(session, deal.id, notes="Resolved by bulk run")

    def _flag(
        self,
        deal: Deal,
        reason: ReviewReason,
        notes: str,
        progress: dict[str, Any],
        run_id: UUID | None,
    ) -> UUID:
        with self._session_scope() as session:
            session.execute(
                sa.update(deals)
                .where(deals.c.id == deal.id)
                .values(resolution_state=ResolutionState.REVIEW_PENDING.value, updated_at=utcnow())
            )
            return self.review_queue.flag(
                session,
                deal,
                reason,
                notes=notes,
                suggested_company_id=progress.get("company_id"),
                suggested_contact_id=progress.get("contact_id"),
                run_id=run_id,
            )

    def process_deal(self, deal: Deal, run_id: UUID | None = None) -> FlaggedDeal | None:
        """Resolve one deal, converting any failure into a review entry.

        Returns:
            None on success, otherwise the flagged deal
        """
        progress: dict[str, Any] = {}

        try:
            self._set_state(deal.id, ResolutionState.RESOLVING)
            outcome = self.resolve_deal(deal, progress)
            self._write_back(deal, outcome)
            return None
        except ResolutionError as e:
            reason, notes = e.reason, e.message
        except Exception as e:
            logger.exception(f"Unexpected error resolving deal {deal.id}")
            reason, notes = ReviewReason.ENTITY_CREATION_FAILED, f"{type(e).__name__}: {e}"

        entry_id = None
        try:
            entry_id = self._flag(deal, reason, notes, progress, run_id)
        except Exception:
            logger.exception(f"Failed to record review entry for deal {deal.id}")

        return FlaggedDeal(deal_id=deal.id, entry_id=entry_id, reason=reason, notes=notes)

    # =========================
    # Bulk run
    # =========================

    def run(self, run_filter: RunFilter | None = None) -> RunResult:
        """Resolve every pending deal matching the filter.

        Raises:
            BulkRunInProgressError: another bulk run holds the lease
        """
        run_filter = run_filter or RunFilter()
        run_id = self.lease.acquire(ResolutionMode.BATCH)
        result = RunResult(run_id=run_id)
        status = RunStatus.FAILED
        started = time.monotonic()
        run_logger = get_context_logger(__name__, run_id=str(run_id), mode="batch")
        log_run_start(str(run_id), ResolutionMode.BATCH.value)

        try:
            deal_ids = self.find_pending_deal_ids(run_filter)
            run_logger.info(f"Found {len(deal_ids)} deals to resolve")

            for start in range(0, len(deal_ids), self.batch_size):
                batch = self._load_deals(deal_ids[start : start + self.batch_size])
                for deal in batch:
                    if deal.is_resolved:
                        result.skipped_count += 1
                        continue

                    flagged = self.process_deal(deal, run_id)
                    if flagged is None:
                        result.success_count += 1
                    else:
                        result.error_count += 1
                        result.review_entries.append(flagged)

                run_logger.info(
                    f"Processed {min(start + self.batch_size, len(deal_ids))}/{len(deal_ids)} deals",
                    extra={
                        "success_count": result.success_count,
                        "error_count": result.error_count,
                    },
                )

            status = RunStatus.COMPLETED
        finally:
            result.duration_seconds = time.monotonic() - started
            try:
                self.lease.release(
                    run_id,
                    status=status,
                    success_count=result.success_count,
                    error_count=result.error_count,
                    skipped_count=result.skipped_count,
                )
            finally:
                log_run_complete(
                    str(run_id),
                    result.success_count,
                    result.error_count,
                    result.duration_seconds,
                )

        return result


def run_resolution(
    run_filter: RunFilter | None = None,
    orchestrator: MigrationOrchestrator | None = None,
) -> dict[str, Any]:
    """Convenience function to run bulk resolution.

    Returns:
        Dictionary with counts and the reason-tagged unresolved deals
    """
    orchestrator = orchestrator or MigrationOrchestrator()
    result = orchestrator.run(run_filter)
    return {
        "run_id": str(result.run_id),
        "successCount": result.success_count,
        "errorCount": result.error_count,
        "skippedCount": result.skipped_count,
        "reviewEntries": [entry.model_dump(mode="json") for entry in result.review_entries],
    }
