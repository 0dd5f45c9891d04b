"""Shared pytest fixtures for CRMRES tests.

Every test gets its own SQLite database file so concurrent tests exercise
real transactions, savepoints, and unique constraints.
"""

import logging

import pytest
from sqlalchemy.orm import sessionmaker

from crmres.config import get_settings
from crmres.db import create_db_engine, init_db, make_session_scope
from crmres.models.entities import DealCreate
from crmres.resolution.company import CompanyResolver
from crmres.resolution.contact import ContactResolver
from crmres.resolution.lease import BulkRunLease
from crmres.resolution.locks import KeyedLock
from crmres.resolution.migration import MigrationOrchestrator
from crmres.review.queue import ReviewQueue
from crmres.seed import insert_deals

from tests.fixtures.database import DBInspector


@pytest.fixture(autouse=True)
def _settings(monkeypatch):
    """Isolate settings from the developer's environment."""
    monkeypatch.setenv("CRMRES_LOG_FORMAT", "text")
    monkeypatch.setenv("CRMRES_EXTRA_PERSONAL_DOMAINS", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo handlers installed by setup_logging during a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


# =========================
# Database
# =========================


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite database with all tables."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'crmres.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_scope(engine):
    """Transactional session scope bound to the test database."""
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    return make_session_scope(factory)


@pytest.fixture
def db(session_scope) -> DBInspector:
    """Read helpers over the test database."""
    return DBInspector(session_scope)


@pytest.fixture
def configured_db(engine):
    """Point the module-level engine at the test database (CLI and API)."""
    from crmres import db as db_module

    previous = (db_module._engine, db_module._session_factory)
    db_module.configure(engine)
    yield engine
    db_module._engine, db_module._session_factory = previous


# =========================
# Resolution components
# =========================


@pytest.fixture
def locks() -> KeyedLock:
    """A lock registry private to the test."""
    return KeyedLock(timeout=10)


@pytest.fixture
def company_resolver(session_scope, locks) -> CompanyResolver:
    return CompanyResolver(session_scope, locks)


@pytest.fixture
def contact_resolver(session_scope, locks) -> ContactResolver:
    return ContactResolver(session_scope, locks)


@pytest.fixture
def review_queue(session_scope) -> ReviewQueue:
    return ReviewQueue(session_scope)


@pytest.fixture
def lease(session_scope) -> BulkRunLease:
    return BulkRunLease(session_scope)


@pytest.fixture
def orchestrator(
    session_scope, locks, company_resolver, contact_resolver, review_queue, lease
) -> MigrationOrchestrator:
    """Bulk orchestrator with a small batch size to exercise paging."""
    return MigrationOrchestrator(
        session_scope=session_scope,
        locks=locks,
        company_resolver=company_resolver,
        contact_resolver=contact_resolver,
        review_queue=review_queue,
        lease=lease,
        batch_size=2,
    )


@pytest.fixture
def add_deals(session_scope):
    """Insert deals from keyword dicts and return their IDs."""

    def _add(*items: dict):
        return insert_deals([DealCreate(**item) for item in items], session_scope)

    return _add
