"""Contact resolution: find-or-create a canonical contact keyed by email.

Rules:
- Lookup is case-insensitive on the exact email, preferring a contact
  already attached to the requested company.
- A contact attached to a company keeps it; later calls naming a different
  company never reassign it.
- A contact with no company is attached when a company is supplied.
- A new contact becomes the company's primary only if it is the first
  contact for that company; the count and insert happen under the
  company's lock in a single transaction.
"""

from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import SessionScope, contacts, get_db_session, utcnow
from ..logging import get_context_logger, log_resolution_event
from ..models.base import ResolutionMode
from ..models.entities import Contact, row_to_model
from .domains import is_valid_email, normalize_email
from .errors import EntityCreationFailedError, InvalidEmailError, NoEmailError
from .locks import KeyedLock, get_default_locks

logger = get_context_logger(__name__)


def split_display_name(display_name: str | None) -> tuple[str | None, str | None]:
    """Split a display name at the first whitespace boundary.

    'Mary Ann Smith' -> ('Mary', 'Ann Smith')
    """
    if not display_name or not display_name.strip():
        return None, None
    parts = display_name.strip().split(None, 1)
    first = parts[0]
    last = parts[1].strip() if len(parts) > 1 else None
    return first, last or None


def find_contact(
    session: Session,
    email: str,
    company_id: UUID | None = None,
) -> Contact | None:
    """Find a contact by email, preferring one scoped to ``company_id``."""
    base = sa.select(contacts).where(sa.func.lower(contacts.c.email) == email.lower())

    if company_id is not None:
        row = session.execute(
            base.where(contacts.c.company_id == company_id).limit(1)
        ).first()
        if row is not None:
            return row_to_model(Contact, row)

    row = session.execute(
        base.order_by(contacts.c.created_at, contacts.c.id).limit(1)
    ).first()
    return row_to_model(Contact, row) if row is not None else None


def count_company_contacts(session: Session, company_id: UUID) -> int:
    """Count contacts attached to a company."""
    return session.execute(
        sa.select(sa.func.count()).select_from(contacts).where(contacts.c.company_id == company_id)
    ).scalar_one()


class ContactResolver:
    """Find-or-create canonical contacts keyed by email."""

    def __init__(
        self,
        session_scope: SessionScope | None = None,
        locks: KeyedLock | None = None,
    ):
        self._session_scope = session_scope or get_db_session
        self._locks = locks or get_default_locks()

    def resolve(
        self,
        email: str | None,
        display_name: str | None,
        company_id: UUID | None,
        owner_id: str | None,
        mode: ResolutionMode = ResolutionMode.INCREMENTAL,
    ) -> UUID:
        """Resolve a contact by email.

        Args:
            email: Contact email (required)
            display_name: Free-text name, split into first/last on create
            company_id: Company to attach when known
            owner_id: Owner recorded on creation
            mode: Who is driving the call

        Returns:
            Contact ID

        Raises:
            NoEmailError: email is missing
            InvalidEmailError: email is malformed
            EntityCreationFailedError: create failed after the race re-query
        """
        normalized = normalize_email(email)
        if normalized is None:
            raise NoEmailError("Contact email is missing")
        if not is_valid_email(normalized):
            raise InvalidEmailError(
                f"Contact email is malformed: {email!r}",
                details={"email": email},
            )

        with self._locks.hold(f"contact:email:{normalized}"):
            if company_id is None:
                with self._session_scope() as session:
                    return self._resolve_locked(
                        session, normalized, display_name, None, owner_id, mode
                    )

            with self._locks.hold(f"company:primary:{company_id}"):
                with self._session_scope() as session:
                    return self._resolve_locked(
                        session, normalized, display_name, company_id, owner_id, mode
                    )

    def _resolve_locked(
        self,
        session: Session,
        email: str,
        display_name: str | None,
        company_id: UUID | None,
        owner_id: str | None,
        mode: ResolutionMode,
    ) -> UUID:
        existing = find_contact(session, email, company_id)
        if existing is not None:
            self._reconcile_company(session, existing, company_id, mode)
            return existing.id

        is_primary = company_id is not None and count_company_contacts(session, company_id) == 0

        try:
            contact_id = self._insert(session, email, display_name, company_id, owner_id, is_primary)
        except IntegrityError as first_error:
            existing = find_contact(session, email, company_id)
            if existing is not None:
                log_resolution_event("contact", email, str(existing.id), "race_requery", mode.value)
                self._reconcile_company(session, existing, company_id, mode)
                return existing.id

            if not is_primary:
                raise EntityCreationFailedError(
                    f"Could not create contact {email!r}",
                    details={"email": email, "error": str(first_error.orig)},
                ) from first_error

            # Another writer claimed primary for this company first
            try:
                contact_id = self._insert(
                    session, email, display_name, company_id, owner_id, is_primary=False
                )
            except IntegrityError as second_error:
                raise EntityCreationFailedError(
                    f"Could not create contact {email!r}",
                    details={"email": email, "error": str(second_error.orig)},
                ) from second_error

        log_resolution_event("contact", email, str(contact_id), "created", mode.value)
        return contact_id

    def _insert(
        self,
        session: Session,
        email: str,
        display_name: str | None,
        company_id: UUID | None,
        owner_id: str | None,
        is_primary: bool,
    ) -> UUID:
        first_name, last_name = split_display_name(display_name)
        contact_id = uuid4()
        now = utcnow()
        with session.begin_nested():
            session.execute(
                sa.insert(contacts).values(
                    id=contact_id,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    company_id=company_id,
                    is_primary=is_primary,
                    owner_id=owner_id,
                    created_at=now,
                    updated_at=now,
                )
            )
        return contact_id

    def _reconcile_company(
        self,
        session: Session,
        existing: Contact,
        company_id: UUID | None,
        mode: ResolutionMode,
    ) -> None:
        if company_id is None or existing.company_id == company_id:
            log_resolution_event("contact", existing.email, str(existing.id), "found", mode.value)
            return

        if existing.company_id is not None:
            # Never reassign automatically
            log_resolution_event("contact", existing.email, str(existing.id), "kept", mode.value)
            logger.info(
                f"Contact {existing.email} stays with its company",
                extra={
                    "contact_id": str(existing.id),
                    "company_id": str(existing.company_id),
                    "requested_company_id": str(company_id),
                },
            )
            return

        attach_company(session, existing.id, company_id)
        log_resolution_event("contact", existing.email, str(existing.id), "attached", mode.value)


def attach_company(session: Session, contact_id: UUID, company_id: UUID) -> bool:
    """Fill a contact's company if it has none; never overwrites.

    Returns:
        True if the contact was attached
    """
    result = session.execute(
        sa.update(contacts)
        .where(contacts.c.id == contact_id, contacts.c.company_id.is_(None))
        .values(company_id=company_id, updated_at=utcnow())
    )
    return result.rowcount > 0


def resolve_contact(
    email: str | None,
    name: str | None,
    company_id: UUID | None,
    owner_id: str | None,
    mode: ResolutionMode = ResolutionMode.INCREMENTAL,
    resolver: ContactResolver | None = None,
) -> UUID:
    """Resolve a contact with the default resolver."""
    resolver = resolver or ContactResolver()
    return resolver.resolve(email, name, company_id, owner_id, mode)
