"""Company resolution: find-or-create a canonical company.

Resolution flow:
1. Corporate domain present -> case-insensitive lookup by domain
2. Otherwise -> case-insensitive lookup by exact name within the owner scope
3. Not found -> create, suffixing the name on collision (" (2)", " (3)", ...)

Creation is create-or-find: a unique-constraint violation re-queries the
key once before the attempt is classified as a genuine failure.
"""

import re
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import SessionScope, companies, company_name_key, get_db_session, utcnow
from ..logging import get_context_logger, log_resolution_event
from ..models.base import ResolutionMode
from .domains import classify, company_name_from_domain, is_personal_domain, looks_like_domain
from .errors import EntityCreationFailedError
from .locks import KeyedLock, get_default_locks

logger = get_context_logger(__name__)

SUFFIX_PATTERN = re.compile(r"^(?P<base>.*) \((?P<n>\d+)\)$")


def _owner_clause(owner_id: str | None):
    if owner_id is None:
        return companies.c.owner_id.is_(None)
    return companies.c.owner_id == owner_id


def find_by_domain(session: Session, domain: str) -> UUID | None:
    """Find a company by domain (case-insensitive)."""
    return session.execute(
        sa.select(companies.c.id)
        .where(sa.func.lower(companies.c.domain) == domain.lower())
        .order_by(companies.c.created_at, companies.c.id)
        .limit(1)
    ).scalar_one_or_none()


def find_by_name(session: Session, name: str, owner_id: str | None) -> UUID | None:
    """Find a company by exact name within an owner scope (case-insensitive).

    Ties go to the earliest created company.
    """
    return session.execute(
        sa.select(companies.c.id)
        .where(
            companies.c.name_key == company_name_key(name),
            _owner_clause(owner_id),
        )
        .order_by(companies.c.created_at, companies.c.id)
        .limit(1)
    ).scalar_one_or_none()


def next_available_name(session: Session, name: str, owner_id: str | None) -> str:
    """Return ``name`` or its next free numeric suffix in the owner scope.

    The unsuffixed name counts as 1, so the second "Acme" becomes
    "Acme (2)", the third "Acme (3)", and so on.
    """
    key = company_name_key(name)
    rows = session.execute(
        sa.select(companies.c.name_key).where(
            _owner_clause(owner_id),
            sa.or_(
                companies.c.name_key == key,
                companies.c.name_key.startswith(f"{key} (", autoescape=True),
            ),
        )
    ).scalars().all()

    taken = 0
    for existing in rows:
        if existing == key:
            taken = max(taken, 1)
            continue
        match = SUFFIX_PATTERN.match(existing)
        if match and match.group("base") == key:
            taken = max(taken, int(match.group("n")))

    if taken == 0:
        return name
    return f"{name} ({taken + 1})"


class CompanyResolver:
    """Find-or-create canonical companies keyed by domain, then by name."""

    def __init__(
        self,
        session_scope: SessionScope | None = None,
        locks: KeyedLock | None = None,
    ):
        """Initialize the resolver.

        Args:
            session_scope: Callable returning a transactional session context
            locks: Per-key lock registry (defaults to the process-wide one)
        """
        self._session_scope = session_scope or get_db_session
        self._locks = locks or get_default_locks()

    def resolve(
        self,
        domain: str | None,
        fallback_name: str | None,
        owner_id: str | None,
        mode: ResolutionMode = ResolutionMode.INCREMENTAL,
    ) -> UUID | None:
        """Resolve a company from a domain and/or a display name.

        Args:
            domain: Corporate email domain (personal domains are ignored)
            fallback_name: Display name used for lookup or creation
            owner_id: Owner scope for name-keyed companies
            mode: Who is driving the call

        Returns:
            Company ID, or None when neither a domain nor a name is usable
        """
        domain = (domain or "").strip().lower() or None
        name = (fallback_name or "").strip() or None

        if domain and is_personal_domain(domain):
            domain = None

        if domain:
            with self._locks.hold(f"company:domain:{domain}"):
                with self._session_scope() as session:
                    company_id = find_by_domain(session, domain)
                    if company_id is not None:
                        log_resolution_event("company", domain, str(company_id), "found", mode.value)
                        return company_id
                    return self._create(
                        session,
                        name or company_name_from_domain(domain),
                        domain,
                        owner_id,
                        mode,
                    )

        if not name:
            return None

        with self._locks.hold(f"company:name:{owner_id}:{company_name_key(name)}"):
            with self._session_scope() as session:
                company_id = find_by_name(session, name, owner_id)
                if company_id is not None:
                    log_resolution_event("company", name, str(company_id), "found", mode.value)
                    return company_id
                return self._create(session, name, None, owner_id, mode)

    def _requery(self, session: Session, name: str, domain: str | None, owner_id: str | None) -> UUID | None:
        if domain:
            return find_by_domain(session, domain)
        return find_by_name(session, name, owner_id)

    def _insert(
        self,
        session: Session,
        name: str,
        domain: str | None,
        owner_id: str | None,
    ) -> UUID:
        company_id = uuid4()
        now = utcnow()
        with session.begin_nested():
            session.execute(
                sa.insert(companies).values(
                    id=company_id,
                    name=name,
                    name_key=company_name_key(name),
                    domain=domain,
                    owner_id=owner_id,
                    created_at=now,
                    updated_at=now,
                )
            )
        return company_id

    def _create(
        self,
        session: Session,
        name: str,
        domain: str | None,
        owner_id: str | None,
        mode: ResolutionMode,
    ) -> UUID:
        key = domain or name
        stored_name = next_available_name(session, name, owner_id)

        try:
            company_id = self._insert(session, stored_name, domain, owner_id)
        except IntegrityError as first_error:
            # Another writer got there first: find instead of fail
            company_id = self._requery(session, name, domain, owner_id)
            if company_id is not None:
                log_resolution_event("company", key, str(company_id), "race_requery", mode.value)
                return company_id

            # Still missing, so the conflict was on the name; take the next suffix
            stored_name = next_available_name(session, name, owner_id)
            try:
                company_id = self._insert(session, stored_name, domain, owner_id)
            except IntegrityError as second_error:
                raise EntityCreationFailedError(
                    f"Could not create company {name!r}",
                    details={
                        "domain": domain,
                        "name": name,
                        "owner_id": owner_id,
                        "error": str(second_error.orig or first_error.orig),
                    },
                ) from second_error

        action = "created" if stored_name == name else "suffixed"
        log_resolution_event("company", key, str(company_id), action, mode.value)
        if action == "suffixed":
            logger.info(
                f"Company name {name!r} taken, stored as {stored_name!r}",
                extra={"company_id": str(company_id), "owner_id": owner_id},
            )
        return company_id


def resolve_company(
    domain_or_name: str | None,
    owner_id: str | None,
    fallback_name: str | None = None,
    mode: ResolutionMode = ResolutionMode.INCREMENTAL,
    resolver: CompanyResolver | None = None,
) -> UUID | None:
    """Resolve a company from a single free-text value.

    An email is classified to its corporate domain, a bare domain is used
    as-is, and anything else is treated as a company name.
    """
    resolver = resolver or CompanyResolver()
    value = (domain_or_name or "").strip()

    if "@" in value:
        return resolver.resolve(classify(value), fallback_name, owner_id, mode)
    if looks_like_domain(value):
        return resolver.resolve(value, fallback_name, owner_id, mode)
    return resolver.resolve(None, value or fallback_name, owner_id, mode)
