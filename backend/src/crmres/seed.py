"""Deal import for CRMRES.

Loads historical deals (free-text company and contact fields only) from
JSON, the shape they arrive in from legacy CRM exports.
"""

import json
from collections.abc import Iterable
from pathlib import Path
from uuid import UUID, uuid4

import sqlalchemy as sa

from .db import SessionScope, deals, get_db_session, utcnow
from .logging import get_logger
from .models.base import ResolutionState
from .models.entities import DealCreate

logger = get_logger(__name__)


def insert_deals(
    items: Iterable[DealCreate],
    session_scope: SessionScope | None = None,
) -> list[UUID]:
    """Insert unresolved deals in one transaction.

    Returns:
        IDs of the inserted deals, in input order
    """
    session_scope = session_scope or get_db_session
    ids: list[UUID] = []
    rows = []
    for item in items:
        deal_id = uuid4()
        now = utcnow()
        rows.append(
            {
                "id": deal_id,
                "name": item.name,
                "company": item.company,
                "contact_name": item.contact_name,
                "contact_email": item.contact_email,
                "owner_id": item.owner_id,
                "resolution_state": ResolutionState.UNRESOLVED.value,
                "created_at": item.created_at or now,
                "updated_at": now,
            }
        )
        ids.append(deal_id)

    if rows:
        with session_scope() as session:
            session.execute(sa.insert(deals), rows)

    logger.info(f"Imported {len(ids)} deals")
    return ids


def load_deals_file(path: str | Path) -> list[DealCreate]:
    """Parse a JSON array of deals.

    Raises:
        ValueError: the file is not a JSON array of deal objects
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array of deals in {path}")
    return [DealCreate.model_validate(item) for item in data]
