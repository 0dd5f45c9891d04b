"""Orphan contact linking.

Repairs contacts left without a company because their email domain was
personal. For each unlinked contact:

1. An override (email -> company name) wins if one exists
2. Otherwise the contact's full name is matched case-insensitively against
   name-only companies (no domain) in the same owner scope; ties go to the
   earliest created company
3. Otherwise RapidFuzz ranks near-miss candidates, which are reported as
   suggestions needing manual confirmation, never linked automatically

Produces a coverage report used as the acceptance signal for the pass.
"""

import re
from collections import defaultdict
from collections.abc import Iterable
from uuid import UUID

import sqlalchemy as sa
from pydantic import BaseModel, Field
from rapidfuzz import fuzz, process
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import SessionScope, companies, company_name_key, contacts, get_db_session, orphan_overrides, utcnow
from ..logging import get_context_logger
from ..models.base import ReviewReason
from ..models.entities import Contact, row_to_model
from .company import find_by_name
from .contact import attach_company
from .errors import FuzzyMatchUncertainError
from .locks import KeyedLock, get_default_locks

logger = get_context_logger(__name__)

# Common suffixes stripped before fuzzy comparison
ORG_SUFFIXES = [
    r"\bInc\.?$",
    r"\bIncorporated$",
    r"\bLtd\.?$",
    r"\bLimited$",
    r"\bLLC$",
    r"\bL\.?L\.?C\.?$",
    r"\bCorp\.?$",
    r"\bCorporation$",
    r"\bCo\.?$",
    r"\bCompany$",
    r"\bPLC$",
    r"\bGmbH$",
]


def normalize_name(name: str | None) -> str:
    """Normalize a person or company name for fuzzy matching."""
    if not name:
        return ""
    normalized = name.upper().strip()
    for suffix in ORG_SUFFIXES:
        normalized = re.sub(suffix, "", normalized, flags=re.IGNORECASE).strip()
    normalized = re.sub(r"[^A-Z0-9\s]", "", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


class CompanyCandidate(BaseModel):
    """A name-only company ranked against an orphan contact."""

    company_id: UUID
    name: str
    score: float


class OrphanSuggestion(BaseModel):
    """An orphan contact with no confident target."""

    contact_id: UUID
    email: str
    full_name: str
    reason: ReviewReason = ReviewReason.FUZZY_MATCH_UNCERTAINTY
    candidates: list[CompanyCandidate] = Field(default_factory=list)


class OrphanLink(BaseModel):
    """A contact linked (or, in a dry run, linkable) to a company."""

    contact_id: UUID
    company_id: UUID
    method: str  # "override" or "exact"


class CoverageReport(BaseModel):
    """Outcome of an orphan linking pass."""

    total_contacts: int = 0
    orphans_found: int = 0
    linked_count: int = 0
    unlinked_count: int = 0
    coverage_percent: float = 100.0
    dry_run: bool = False
    by_method: dict[str, int] = Field(default_factory=dict)
    links: list[OrphanLink] = Field(default_factory=list)
    suggestions: list[OrphanSuggestion] = Field(default_factory=list)


class _NamedCompany(BaseModel):
    id: UUID
    name: str


class OrphanLinker:
    """Link company-less contacts to name-only companies."""

    def __init__(
        self,
        session_scope: SessionScope | None = None,
        locks: KeyedLock | None = None,
        min_score: int | None = None,
        max_candidates: int = 5,
    ):
        """Initialize the linker.

        Args:
            session_scope: Callable returning a transactional session context
            locks: Per-key lock registry shared with the resolvers
            min_score: Minimum RapidFuzz score (0-100) for a suggestion
            max_candidates: Maximum suggestions per contact
        """
        self._session_scope = session_scope or get_db_session
        self._locks = locks or get_default_locks()
        self.min_score = min_score if min_score is not None else get_settings().orphan_fuzzy_threshold
        self.max_candidates = max_candidates

    # =========================
    # Overrides
    # =========================

    def add_override(self, email: str, company_name: str, owner_id: str | None = None) -> None:
        """Add or replace an (email -> company name) override.

        With ``owner_id`` the override only applies to that owner's contacts.
        """
        email = email.strip().lower()
        with self._session_scope() as session:
            session.execute(sa.delete(orphan_overrides).where(orphan_overrides.c.email == email))
            session.execute(
                sa.insert(orphan_overrides).values(
                    email=email,
                    company_name=company_name.strip(),
                    owner_id=owner_id,
                    created_at=utcnow(),
                )
            )

    def seed_overrides(self, overrides: Iterable[tuple[str, str]], owner_id: str | None = None) -> int:
        """Load a list of overrides, replacing existing ones for the same emails."""
        count = 0
        for email, company_name in overrides:
            self.add_override(email, company_name, owner_id)
            count += 1
        return count

    def _load_overrides(self, session: Session) -> dict[str, tuple[str, str | None]]:
        rows = session.execute(
            sa.select(
                orphan_overrides.c.email,
                orphan_overrides.c.company_name,
                orphan_overrides.c.owner_id,
            )
        ).all()
        return {email.lower(): (company_name, owner_id) for email, company_name, owner_id in rows}

    # =========================
    # Matching
    # =========================

    def _load_name_only_companies(self, session: Session) -> dict[str | None, list[_NamedCompany]]:
        rows = session.execute(
            sa.select(companies.c.id, companies.c.name, companies.c.owner_id)
            .where(companies.c.domain.is_(None))
            .order_by(companies.c.created_at, companies.c.id)
        ).all()
        by_owner: dict[str | None, list[_NamedCompany]] = defaultdict(list)
        for company_id, name, owner_id in rows:
            by_owner[owner_id].append(_NamedCompany(id=company_id, name=name))
        return by_owner

    def rank_candidates(self, full_name: str, pool: list[_NamedCompany]) -> list[CompanyCandidate]:
        """Rank companies by fuzzy similarity to a contact's full name."""
        query = normalize_name(full_name)
        if not query or not pool:
            return []

        names = [normalize_name(company.name) for company in pool]
        matches = process.extract(
            query,
            names,
            scorer=fuzz.WRatio,
            limit=self.max_candidates,
            score_cutoff=self.min_score,
        )
        return [
            CompanyCandidate(company_id=pool[idx].id, name=pool[idx].name, score=round(score, 2))
            for _, score, idx in matches
        ]

    def match_contact(
        self,
        session: Session,
        contact: Contact,
        overrides: dict[str, tuple[str, str | None]],
        pool: list[_NamedCompany],
    ) -> OrphanLink | None:
        """Pick a target company for one orphan contact.

        Returns:
            The link, or None when nothing resembles the contact

        Raises:
            FuzzyMatchUncertainError: only near-miss candidates exist
        """
        override_name, override_owner = overrides.get(contact.email.lower(), (None, None))
        # An owner-scoped override only applies to that owner's contacts
        if override_owner is not None and override_owner != contact.owner_id:
            override_name = None
        if override_name:
            company_id = find_by_name(session, override_name, contact.owner_id)
            if company_id is not None:
                return OrphanLink(contact_id=contact.id, company_id=company_id, method="override")
            logger.warning(
                f"Override target {override_name!r} for {contact.email} does not exist",
                extra={"contact_id": str(contact.id)},
            )

        full_name = contact.full_name
        if not full_name:
            return None

        key = company_name_key(full_name)
        for company in pool:
            if company_name_key(company.name) == key:
                return OrphanLink(contact_id=contact.id, company_id=company.id, method="exact")

        candidates = self.rank_candidates(full_name, pool)
        if candidates:
            raise FuzzyMatchUncertainError(
                f"No confident company for {contact.email}",
                details={"candidates": [c.model_dump() for c in candidates]},
            )
        return None

    # =========================
    # Pass
    # =========================

    def run(self, owner_id: str | None = None, dry_run: bool = False) -> CoverageReport:
        """Link orphan contacts and report coverage.

        Args:
            owner_id: Only contacts owned by this scope
            dry_run: Report what would be linked without writing

        Returns:
            Coverage report
        """
        report = CoverageReport(dry_run=dry_run)
        contact_filter = [] if owner_id is None else [contacts.c.owner_id == owner_id]

        with self._session_scope() as session:
            report.total_contacts = session.execute(
                sa.select(sa.func.count()).select_from(contacts).where(*contact_filter)
            ).scalar_one()
            orphan_rows = session.execute(
                sa.select(contacts)
                .where(contacts.c.company_id.is_(None), *contact_filter)
                .order_by(contacts.c.created_at, contacts.c.id)
            ).all()
            overrides = self._load_overrides(session)
            pools = self._load_name_only_companies(session)

            orphans = [row_to_model(Contact, row) for row in orphan_rows]
            report.orphans_found = len(orphans)

            for contact in orphans:
                try:
                    link = self.match_contact(
                        session, contact, overrides, pools.get(contact.owner_id, [])
                    )
                except FuzzyMatchUncertainError as e:
                    report.suggestions.append(
                        OrphanSuggestion(
                            contact_id=contact.id,
                            email=contact.email,
                            full_name=contact.full_name,
                            candidates=e.details["candidates"],
                        )
                    )
                    continue

                if link is None:
                    continue
                report.links.append(link)
                report.by_method[link.method] = report.by_method.get(link.method, 0) + 1

        if not dry_run:
            report.links = [link for link in report.links if self._apply(link)]
            report.by_method = {}
            for link in report.links:
                report.by_method[link.method] = report.by_method.get(link.method, 0) + 1

        report.linked_count = len(report.links)
        report.unlinked_count = report.orphans_found - report.linked_count
        if report.total_contacts:
            covered = report.total_contacts - report.unlinked_count
            report.coverage_percent = round(covered / report.total_contacts * 100, 2)

        logger.info(
            f"Orphan linking {'dry run ' if dry_run else ''}complete: "
            f"{report.linked_count} linked, {report.unlinked_count} unlinked, "
            f"{len(report.suggestions)} need confirmation, "
            f"coverage {report.coverage_percent:.1f}%"
        )
        return report

    def _apply(self, link: OrphanLink) -> bool:
        with self._session_scope() as session:
            email = session.execute(
                sa.select(contacts.c.email).where(contacts.c.id == link.contact_id)
            ).scalar_one()

        with self._locks.hold(f"contact:email:{email}"):
            with self._session_scope() as session:
                return attach_company(session, link.contact_id, link.company_id)

    def confirm_link(self, contact_id: UUID, company_id: UUID) -> bool:
        """Manually confirm a suggested link.

        Returns:
            True if attached, False if the contact already had this company

        Raises:
            LookupError: unknown contact or company
            ValueError: the contact already belongs to another company
        """
        with self._session_scope() as session:
            row = session.execute(
                sa.select(contacts.c.email, contacts.c.company_id).where(contacts.c.id == contact_id)
            ).first()
            if row is None:
                raise LookupError(f"Contact not found: {contact_id}")
            company_exists = session.execute(
                sa.select(companies.c.id).where(companies.c.id == company_id)
            ).scalar_one_or_none()
            if company_exists is None:
                raise LookupError(f"Company not found: {company_id}")

        email, current = row
        if current == company_id:
            return False
        if current is not None:
            raise ValueError(f"Contact {contact_id} already belongs to company {current}")

        with self._locks.hold(f"contact:email:{email}"):
            with self._session_scope() as session:
                attached = attach_company(session, contact_id, company_id)

        if not attached:
            raise ValueError(f"Contact {contact_id} was linked concurrently")
        logger.info(
            f"Confirmed link {contact_id} -> {company_id}",
            extra={"contact_id": str(contact_id), "company_id": str(company_id)},
        )
        return True
