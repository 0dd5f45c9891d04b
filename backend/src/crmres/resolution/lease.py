"""Bulk-run lease for batch vs. incremental mutual exclusion.

The lease is a row in ``resolution_runs`` whose ``lease`` column holds a
fixed token while a bulk run is active. The column is unique, so a second
bulk run cannot acquire it, and incremental hooks defer their writes while
it is held. State lives in the database rather than the process, so it is
shared by every worker.
"""

from datetime import timedelta
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from ..db import SessionScope, get_db_session, resolution_runs, utcnow
from ..logging import get_context_logger
from ..models.base import ResolutionMode, RunStatus
from .errors import BulkRunInProgressError

logger = get_context_logger(__name__)

BULK_LEASE = "bulk"


class BulkRunLease:
    """Acquire, inspect, and release the bulk-run lease."""

    def __init__(self, session_scope: SessionScope | None = None):
        self._session_scope = session_scope or get_db_session

    def acquire(self, mode: ResolutionMode = ResolutionMode.BATCH) -> UUID:
        """Start a run and take the lease.

        Returns:
            The new run ID

        Raises:
            BulkRunInProgressError: another run holds the lease
        """
        run_id = uuid4()
        try:
            with self._session_scope() as session:
                session.execute(
                    sa.insert(resolution_runs).values(
                        id=run_id,
                        mode=mode.value,
                        status=RunStatus.RUNNING.value,
                        lease=BULK_LEASE,
                        started_at=utcnow(),
                    )
                )
        except IntegrityError as e:
            raise BulkRunInProgressError(self._holder()) from e

        logger.info(f"Bulk lease acquired by run {run_id}")
        return run_id

    def release(
        self,
        run_id: UUID,
        status: RunStatus = RunStatus.COMPLETED,
        success_count: int = 0,
        error_count: int = 0,
        skipped_count: int = 0,
    ) -> None:
        """Finish a run and drop the lease."""
        with self._session_scope() as session:
            session.execute(
                sa.update(resolution_runs)
                .where(resolution_runs.c.id == run_id)
                .values(
                    status=status.value,
                    lease=None,
                    finished_at=utcnow(),
                    success_count=success_count,
                    error_count=error_count,
                    skipped_count=skipped_count,
                )
            )
        logger.info(f"Bulk lease released by run {run_id} ({status.value})")

    def active_run(self) -> UUID | None:
        """ID of the run holding the lease, if any."""
        with self._session_scope() as session:
            return session.execute(
                sa.select(resolution_runs.c.id).where(resolution_runs.c.lease == BULK_LEASE)
            ).scalar_one_or_none()

    def is_active(self) -> bool:
        """Whether a bulk run currently holds the lease."""
        return self.active_run() is not None

    def release_stale_runs(self, max_age: timedelta) -> int:
        """Fail runs that have held the lease longer than ``max_age``.

        Recovers from a worker that died mid-run.

        Returns:
            Number of runs released
        """
        cutoff = utcnow() - max_age
        with self._session_scope() as session:
            result = session.execute(
                sa.update(resolution_runs)
                .where(
                    resolution_runs.c.status == RunStatus.RUNNING.value,
                    resolution_runs.c.started_at < cutoff,
                )
                .values(status=RunStatus.FAILED.value, lease=None, finished_at=utcnow())
            )
            released = result.rowcount
        if released:
            logger.warning(f"Released {released} stale resolution run(s)")
        return released

    def _holder(self) -> str | None:
        run_id = self.active_run()
        return str(run_id) if run_id else None
