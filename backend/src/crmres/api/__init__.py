"""FastAPI routes and API modules for CRMRES.

Provides the error envelope, the 404/409 errors the routers raise, and the
handlers that map resolution and review exceptions onto them.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..logging import get_logger
from ..resolution.errors import BulkRunInProgressError
from ..review.queue import ReviewEntryNotFoundError, ReviewTransitionError

T = TypeVar("T")

logger = get_logger(__name__)


# =========================
# Response Models
# =========================


class PaginatedResponse(BaseModel, Generic[T]):
    """Page of results with the total matching count."""

    results: list[T]
    total: int
    limit: int
    offset: int


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    success: bool = False
    error: str
    error_code: str
    details: dict[str, Any] | None = None


# =========================
# Exception Classes
# =========================


class APIError(HTTPException):
    """HTTP error rendered as an ``ErrorResponse``."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message)


class NotFoundError(APIError):
    """Unknown review entry, contact, or company."""

    def __init__(self, resource: str, identifier: str | UUID):
        super().__init__(
            status_code=404,
            error_code="NOT_FOUND",
            message=f"{resource} not found: {identifier}",
            details={"resource": resource, "id": str(identifier)},
        )


class ConflictError(APIError):
    """The resource is not in a state that allows the request."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            status_code=409,
            error_code="CONFLICT",
            message=message,
            details=details,
        )


# =========================
# Exception Handlers
# =========================


def _render(exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            error_code=exc.error_code,
            details=exc.details,
        ).model_dump(),
        headers={"X-Error-Code": exc.error_code},
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return _render(exc)


async def review_not_found_handler(request: Request, exc: ReviewEntryNotFoundError) -> JSONResponse:
    return _render(NotFoundError("Review entry", exc.entry_id))


async def review_transition_handler(request: Request, exc: ReviewTransitionError) -> JSONResponse:
    return _render(ConflictError(str(exc)))


async def bulk_run_handler(request: Request, exc: BulkRunInProgressError) -> JSONResponse:
    """A second bulk run is refused while the lease is held."""
    return _render(ConflictError(str(exc), details={"run_id": exc.run_id}))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), error_code="HTTP_ERROR").model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log and hide unexpected failures."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="An unexpected error occurred",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


def register_exception_handlers(app):
    """Register exception handlers with the FastAPI app."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(ReviewEntryNotFoundError, review_not_found_handler)
    app.add_exception_handler(ReviewTransitionError, review_transition_handler)
    app.add_exception_handler(BulkRunInProgressError, bulk_run_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
