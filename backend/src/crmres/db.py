"""Database connection management and schema for CRMRES.

Provides a synchronous SQLAlchemy engine, a session context manager,
and the table definitions used by the resolvers.
"""

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import MetaData, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings

# =========================
# SQLAlchemy Setup
# =========================

# Naming convention for constraints (improves migration compatibility)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

SessionScope = Callable[[], AbstractContextManager[Session]]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def company_name_key(name: str) -> str:
    """Case-folded company name used for lookups and uniqueness.

    Folded in Python so non-ASCII names compare the same on every backend.
    """
    return name.strip().casefold()


# =========================
# Schema
# =========================

companies = sa.Table(
    "companies",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("name", sa.String(500), nullable=False),
    sa.Column("name_key", sa.String(500), nullable=False),
    sa.Column("domain", sa.String(255), nullable=True, unique=True),
    sa.Column("owner_id", sa.String(255), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
    sa.UniqueConstraint("owner_id", "name_key", name="uq_companies_owner_name_key"),
)

contacts = sa.Table(
    "contacts",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("email", sa.String(320), nullable=False, unique=True),
    sa.Column("first_name", sa.String(255), nullable=True),
    sa.Column("last_name", sa.String(255), nullable=True),
    sa.Column(
        "company_id",
        sa.Uuid,
        sa.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
    ),
    sa.Column("is_primary", sa.Boolean, nullable=False, default=False),
    sa.Column("owner_id", sa.String(255), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
)

# At most one primary contact per company
sa.Index(
    "uq_contacts_primary_company",
    contacts.c.company_id,
    unique=True,
    sqlite_where=contacts.c.is_primary == sa.true(),
    postgresql_where=contacts.c.is_primary == sa.true(),
)

deals = sa.Table(
    "deals",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("name", sa.String(500), nullable=True),
    sa.Column("company", sa.String(500), nullable=True),
    sa.Column("contact_name", sa.String(500), nullable=True),
    sa.Column("contact_email", sa.String(320), nullable=True),
    sa.Column("owner_id", sa.String(255), nullable=True),
    sa.Column(
        "company_id",
        sa.Uuid,
        sa.ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
    ),
    sa.Column(
        "primary_contact_id",
        sa.Uuid,
        sa.ForeignKey("contacts.id", ondelete="SET NULL"),
        nullable=True,
    ),
    sa.Column("resolution_state", sa.String(20), nullable=False, default="unresolved"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
)

sa.Index("idx_deals_created", deals.c.created_at)
sa.Index("idx_deals_owner", deals.c.owner_id)

review_queue = sa.Table(
    "review_queue",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column(
        "deal_id",
        sa.Uuid,
        sa.ForeignKey("deals.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("reason", sa.String(50), nullable=False),
    sa.Column("status", sa.String(20), nullable=False, default="pending"),
    sa.Column("original_company", sa.String(500), nullable=True),
    sa.Column("original_contact_name", sa.String(500), nullable=True),
    sa.Column("original_contact_email", sa.String(320), nullable=True),
    sa.Column("suggested_company_id", sa.Uuid, nullable=True),
    sa.Column("suggested_contact_id", sa.Uuid, nullable=True),
    sa.Column("resolution_notes", sa.Text, nullable=True),
    sa.Column("run_id", sa.Uuid, nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
    sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("resolved_by", sa.String(255), nullable=True),
)

sa.Index("idx_review_queue_status", review_queue.c.status)
sa.Index("idx_review_queue_deal", review_queue.c.deal_id)

orphan_overrides = sa.Table(
    "orphan_overrides",
    metadata,
    sa.Column("email", sa.String(320), primary_key=True),
    sa.Column("company_name", sa.String(500), nullable=False),
    sa.Column("owner_id", sa.String(255), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
)

resolution_runs = sa.Table(
    "resolution_runs",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("mode", sa.String(20), nullable=False),
    sa.Column("status", sa.String(20), nullable=False, default="running"),
    # Non-null only while a bulk run holds the mutual-exclusion lease
    sa.Column("lease", sa.String(50), nullable=True, unique=True),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, default=utcnow),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("success_count", sa.Integer, nullable=False, default=0),
    sa.Column("error_count", sa.Integer, nullable=False, default=0),
    sa.Column("skipped_count", sa.Integer, nullable=False, default=0),
)

sa.Index("idx_resolution_runs_status", resolution_runs.c.status)


# =========================
# Engine and sessions
# =========================

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _configure_sqlite(engine: Engine) -> None:
    """Make pysqlite honour transactions and serialize writers.

    pysqlite defers BEGIN until the first DML statement, which breaks
    SAVEPOINT handling; emitting BEGIN IMMEDIATE ourselves also takes the
    write lock up front so concurrent writers queue instead of deadlocking.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL."""
    if url.startswith("sqlite"):
        engine = sa.create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _configure_sqlite(engine)
        return engine

    return sa.create_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def get_engine() -> Engine:
    """Get or create the SQLAlchemy engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_db_engine(settings.database_url, echo=settings.database_echo)
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


def make_session_scope(factory: sessionmaker) -> SessionScope:
    """Build a transactional session context manager over a factory."""

    @contextmanager
    def _scope() -> Iterator[Session]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Get a database session.

    Usage:
        with get_db_session() as session:
            result = session.execute(query)
    """
    with make_session_scope(get_session_factory())() as session:
        yield session


def init_db(engine: Engine | None = None) -> None:
    """Create all tables directly (development and tests)."""
    metadata.create_all(engine or get_engine())


def configure(engine: Engine) -> None:
    """Point the module-level engine and session factory at ``engine``."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def close_all_connections() -> None:
    """Dispose of the engine (for shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
