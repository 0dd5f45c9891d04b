"""Write events consumed by the incremental hooks."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ContactWrite(BaseModel):
    """A contact about to be inserted, or updated with a new email."""

    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    owner_id: str | None = None
    company_id: UUID | None = None


class ActivityType(str, Enum):
    """Activity kinds recorded by the CRM."""

    MEETING = "meeting"
    PROPOSAL = "proposal"
    SALE = "sale"
    OUTBOUND = "outbound"


class ContactIdentifierType(str, Enum):
    """How an activity identifies its contact."""

    EMAIL = "email"
    PHONE = "phone"
    UNKNOWN = "unknown"


class ActivityWrite(BaseModel):
    """An activity about to be written."""

    contact_identifier: str | None = None
    contact_identifier_type: ContactIdentifierType = ContactIdentifierType.UNKNOWN
    client_name: str | None = None
    type: ActivityType
    user_id: str | None = None
    amount: float | None = None
    contact_id: UUID | None = None
    company_id: UUID | None = None
