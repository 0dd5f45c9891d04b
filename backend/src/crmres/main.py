"""FastAPI application entry point for CRMRES.

Serves the review queue and resolution run endpoints.
"""

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from crmres import __version__
from crmres.config import get_settings
from crmres.db import close_all_connections, get_db_session
from crmres.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Leases older than this are assumed to belong to a dead worker
STALE_RUN_AGE = timedelta(hours=6)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    settings = get_settings()
    logger.info("Starting CRMRES API", extra={"environment": settings.environment})

    try:
        from crmres.resolution.lease import BulkRunLease

        released = BulkRunLease().release_stale_runs(STALE_RUN_AGE)
        if released:
            logger.info(f"Released {released} stale resolution run(s) from a previous session")
    except Exception as e:
        logger.warning(f"Failed to clean up stale resolution runs: {e}")

    yield

    logger.info("Shutting down CRMRES API")
    close_all_connections()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    from crmres.api import register_exception_handlers
    from crmres.api.resolution import router as resolution_router
    from crmres.api.review import router as review_router

    setup_logging()
    settings = get_settings()

    app = FastAPI(
        title="CRMRES API",
        description="Entity resolution and deduplication for CRM deals",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(review_router)
    app.include_router(resolution_router)

    @app.get("/health", tags=["Health"])
    def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "service": "crmres-api"}

    @app.get("/health/ready", tags=["Health"])
    def readiness_check():
        """Readiness check that verifies database connectivity."""
        from sqlalchemy import text

        try:
            with get_db_session() as session:
                session.execute(text("SELECT 1"))
            database = "healthy"
        except Exception as e:
            database = f"unhealthy: {e}"

        status = "ready" if database == "healthy" else "not_ready"
        return {"status": status, "checks": {"database": database}}

    return app


app = create_app()
