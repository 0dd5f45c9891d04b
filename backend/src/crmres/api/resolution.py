"""Resolution run API endpoints for CRMRES."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..resolution.lease import BulkRunLease
from ..resolution.migration import MigrationOrchestrator, RunFilter, RunResult
from ..resolution.orphans import CoverageReport, OrphanLinker
from . import ConflictError, NotFoundError

router = APIRouter(prefix="/resolution", tags=["Resolution"])


def get_orchestrator() -> MigrationOrchestrator:
    """Bulk orchestrator bound to the application database."""
    return MigrationOrchestrator()


def get_orphan_linker() -> OrphanLinker:
    """Orphan linker bound to the application database."""
    return OrphanLinker()


def get_lease() -> BulkRunLease:
    """Bulk-run lease bound to the application database."""
    return BulkRunLease()


# =========================
# Request / Response Models
# =========================


class RunRequest(BaseModel):
    """Request for a bulk resolution run."""

    owner_id: str | None = None
    limit: int | None = Field(default=None, ge=1)


class RunResponse(BaseModel):
    """Outcome of a bulk resolution run."""

    run_id: UUID
    success_count: int
    error_count: int
    skipped_count: int
    review_count: int
    duration_seconds: float

    @classmethod
    def from_result(cls, result: RunResult) -> "RunResponse":
        return cls(
            run_id=result.run_id,
            success_count=result.success_count,
            error_count=result.error_count,
            skipped_count=result.skipped_count,
            review_count=len(result.review_entries),
            duration_seconds=round(result.duration_seconds, 3),
        )


class ActiveRunResponse(BaseModel):
    """Bulk lease status."""

    active: bool
    run_id: UUID | None = None


class ConfirmLinkRequest(BaseModel):
    """Manual confirmation of an orphan contact link."""

    contact_id: UUID
    company_id: UUID


class ConfirmLinkResponse(BaseModel):
    """Result of an orphan link confirmation."""

    contact_id: UUID
    company_id: UUID
    linked: bool


# =========================
# Bulk runs
# =========================


@router.post("/runs", response_model=RunResponse)
def trigger_run(
    request: RunRequest | None = None,
    orchestrator: MigrationOrchestrator = Depends(get_orchestrator),
) -> RunResponse:
    """Run bulk resolution over unresolved deals."""
    request = request or RunRequest()
    result = orchestrator.run(RunFilter(owner_id=request.owner_id, limit=request.limit))
    return RunResponse.from_result(result)


@router.get("/runs/active", response_model=ActiveRunResponse)
def active_run(lease: BulkRunLease = Depends(get_lease)) -> ActiveRunResponse:
    """Report whether a bulk run currently holds the lease."""
    run_id = lease.active_run()
    return ActiveRunResponse(active=run_id is not None, run_id=run_id)


# =========================
# Orphan linking
# =========================


@router.post("/orphans", response_model=CoverageReport)
def link_orphans(
    owner_id: str | None = Query(None),
    dry_run: bool = Query(False),
    linker: OrphanLinker = Depends(get_orphan_linker),
) -> CoverageReport:
    """Link company-less contacts to name-only companies."""
    return linker.run(owner_id=owner_id, dry_run=dry_run)


@router.post("/orphans/confirm", response_model=ConfirmLinkResponse)
def confirm_orphan_link(
    request: ConfirmLinkRequest,
    linker: OrphanLinker = Depends(get_orphan_linker),
) -> ConfirmLinkResponse:
    """Confirm a suggested orphan contact link."""
    try:
        linked = linker.confirm_link(request.contact_id, request.company_id)
    except LookupError as e:
        raise NotFoundError("Contact or company", str(e))
    except ValueError as e:
        raise ConflictError(str(e))
    return ConfirmLinkResponse(
        contact_id=request.contact_id, company_id=request.company_id, linked=linked
    )
