"""Database read helpers for tests."""

from uuid import UUID, uuid4

import sqlalchemy as sa

from crmres.db import (
    SessionScope,
    companies,
    company_name_key,
    contacts,
    deals,
    resolution_runs,
    review_queue,
    utcnow,
)
from crmres.models.entities import Company, Contact, Deal, row_to_model
from crmres.models.review import ReviewQueueEntry


class DBInspector:
    """Query rows as models without going through the resolvers."""

    def __init__(self, session_scope: SessionScope):
        self._session_scope = session_scope

    def _rows(self, query):
        with self._session_scope() as session:
            return session.execute(query).all()

    def deal(self, deal_id: UUID) -> Deal:
        rows = self._rows(sa.select(deals).where(deals.c.id == deal_id))
        return row_to_model(Deal, rows[0])

    def companies(self) -> list[Company]:
        rows = self._rows(sa.select(companies).order_by(companies.c.created_at, companies.c.id))
        return [row_to_model(Company, row) for row in rows]

    def company(self, company_id: UUID) -> Company:
        rows = self._rows(sa.select(companies).where(companies.c.id == company_id))
        return row_to_model(Company, rows[0])

    def contacts(self) -> list[Contact]:
        rows = self._rows(sa.select(contacts).order_by(contacts.c.created_at, contacts.c.id))
        return [row_to_model(Contact, row) for row in rows]

    def contact(self, contact_id: UUID) -> Contact:
        rows = self._rows(sa.select(contacts).where(contacts.c.id == contact_id))
        return row_to_model(Contact, rows[0])

    def contact_by_email(self, email: str) -> Contact | None:
        rows = self._rows(sa.select(contacts).where(contacts.c.email == email))
        return row_to_model(Contact, rows[0]) if rows else None

    def review_entries(self) -> list[ReviewQueueEntry]:
        rows = self._rows(sa.select(review_queue).order_by(review_queue.c.created_at))
        return [row_to_model(ReviewQueueEntry, row) for row in rows]

    def runs(self) -> list[dict]:
        rows = self._rows(sa.select(resolution_runs).order_by(resolution_runs.c.started_at))
        return [dict(row._mapping) for row in rows]

    def insert_company(
        self,
        name: str,
        domain: str | None = None,
        owner_id: str | None = None,
        created_at=None,
    ) -> UUID:
        """Insert a company directly, bypassing resolution."""
        company_id = uuid4()
        now = created_at or utcnow()
        with self._session_scope() as session:
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

    def insert_contact(
        self,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
        company_id: UUID | None = None,
        owner_id: str | None = None,
        is_primary: bool = False,
    ) -> UUID:
        """Insert a contact directly, bypassing resolution."""
        contact_id = uuid4()
        now = utcnow()
        with self._session_scope() as session:
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
