"""Canonical CRM entities: companies, contacts, and deals."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .base import ResolutionState


class Company(BaseModel):
    """One real-world organization."""

    id: UUID
    name: str
    domain: str | None = None
    owner_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Contact(BaseModel):
    """A person, keyed globally by email."""

    id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    company_id: UUID | None = None
    is_primary: bool = False
    owner_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def full_name(self) -> str:
        """First and last name joined and trimmed."""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Deal(BaseModel):
    """A deal carrying free-text company/contact fields."""

    id: UUID
    name: str | None = None
    company: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    owner_id: str | None = None
    company_id: UUID | None = None
    primary_contact_id: UUID | None = None
    resolution_state: ResolutionState = ResolutionState.UNRESOLVED
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_resolved(self) -> bool:
        """Both entity references are set."""
        return self.company_id is not None and self.primary_contact_id is not None


def row_to_model(model: type[BaseModel], row: Any) -> Any:
    """Convert a SQLAlchemy row mapping into a pydantic model."""
    return model.model_validate(dict(row._mapping))


class DealCreate(BaseModel):
    """Input for seeding deals (CLI import and tests)."""

    name: str | None = None
    company: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    owner_id: str | None = None
    created_at: datetime | None = Field(default=None)
