#!/usr/bin/env python3
"""
Load sample deals for CRMRES development and testing.

Creates a small dataset of historical deals that exercises every
resolution path:
- Corporate domains shared across several deals
- Personal mailboxes (company named from the deal)
- Name collisions on personal-domain companies
- Deals with a missing or malformed contact email
"""

import sys
from datetime import datetime, timedelta, timezone

from crmres.db import init_db
from crmres.models.entities import DealCreate
from crmres.seed import insert_deals

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

SAMPLE_DEALS = [
    ("Acme renewal", "Acme Corp", "Jane Doe", "jane@acme.com", "owner-1"),
    ("Acme expansion", "ACME", "John Roe", "john@acme.com", "owner-1"),
    ("Acme support", "Acme Corp", "Jane Doe", "JANE@acme.com", "owner-1"),
    ("Globex pilot", "Globex", "Hank Scorpio", "hank@globex.io", "owner-2"),
    ("Smith consulting", "Smith Consulting", "Mary Ann Smith", "mary.ann@gmail.com", "owner-1"),
    ("Smith follow-up", "Smith Consulting", "Bob Smith", "bob.smith@yahoo.com", "owner-1"),
    ("Initech audit", "Initech", "Peter Gibbons", "peter@initech.com", "owner-2"),
    ("Walk-in", "Nameless Co", "Unknown", None, "owner-2"),
    ("Bad import", "Broken Ltd", "Broken Contact", "not-an-email", "owner-1"),
]


def build_deals() -> list[DealCreate]:
    """Sample deals with increasing creation times."""
    return [
        DealCreate(
            name=name,
            company=company,
            contact_name=contact_name,
            contact_email=email,
            owner_id=owner_id,
            created_at=BASE_TIME + timedelta(hours=i),
        )
        for i, (name, company, contact_name, email, owner_id) in enumerate(SAMPLE_DEALS)
    ]


def main() -> int:
    """Load all sample deals."""
    print("\n" + "=" * 60)
    print("CRMRES Sample Data Loader")
    print("=" * 60 + "\n")

    try:
        init_db()
        ids = insert_deals(build_deals())
    except Exception as e:
        print(f"  \033[91m[FAIL] Database error: {e}\033[0m\n")
        return 1

    print(f"  - Deals: {len(ids)}")
    print("  \033[92m[OK] Sample deals loaded\033[0m\n")
    print("You can now:")
    print("  - Resolve them: crmres resolve run")
    print("  - Inspect the review queue: crmres review list")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
