"""Sample deal exports for CRMRES tests.

Mirrors the shapes legacy CRM exports arrive in: corporate emails,
consumer mailboxes with a company name, and records missing fields.
"""

from datetime import datetime, timedelta, timezone

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def deal(
    email: str | None,
    company: str | None = None,
    contact_name: str | None = None,
    owner_id: str | None = "owner-1",
    minutes: int = 0,
    name: str | None = None,
) -> dict:
    """Build deal fields; ``minutes`` offsets created_at from BASE_TIME."""
    return {
        "name": name or f"Deal for {email or company or 'unknown'}",
        "company": company,
        "contact_name": contact_name,
        "contact_email": email,
        "owner_id": owner_id,
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }


SAMPLE_DEALS = [
    deal("jane@acme.com", "Acme Corp", "Jane Doe", minutes=1),
    deal("john@acme.com", "ACME", "John Roe", minutes=2),
    deal("mary.ann@gmail.com", "Smith Consulting", "Mary Ann Smith", minutes=3),
    deal(None, "Nameless Co", "No Email", minutes=4),
    deal("not-an-email", "Broken Ltd", "Bad Address", minutes=5),
]
