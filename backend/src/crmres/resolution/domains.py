"""Email domain classification.

Extracts the domain of an email address and decides whether it can key
a company (corporate) or is a consumer mailbox provider (personal).
"""

import re

from ..config import get_settings

# Consumer mailbox providers; never used to key a company
PERSONAL_EMAIL_DOMAINS: frozenset[str] = frozenset(
    {
        "gmail.com",
        "yahoo.com",
        "hotmail.com",
        "outlook.com",
        "icloud.com",
        "me.com",
        "aol.com",
        "live.com",
        "msn.com",
        "protonmail.com",
        "yandex.com",
        "mail.com",
    }
)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DOMAIN_PATTERN = re.compile(r"^(?=.{1,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


def normalize_email(email: str | None) -> str | None:
    """Lowercase and trim an email, or None when blank."""
    if email is None:
        return None
    normalized = email.strip().lower()
    return normalized or None


def is_valid_email(email: str | None) -> bool:
    """Check that an email is syntactically usable."""
    normalized = normalize_email(email)
    return bool(normalized and EMAIL_PATTERN.match(normalized))


def extract_domain(email: str | None) -> str | None:
    """Return the lowercase domain of a valid email, personal or not."""
    if not is_valid_email(email):
        return None
    return normalize_email(email).rsplit("@", 1)[1]


def personal_domains() -> frozenset[str]:
    """Built-in blocklist plus any configured additions."""
    extra = get_settings().extra_personal_domains_list
    if not extra:
        return PERSONAL_EMAIL_DOMAINS
    return PERSONAL_EMAIL_DOMAINS | frozenset(extra)


def is_personal_domain(domain: str | None) -> bool:
    """Check whether a domain hosts consumer mailboxes."""
    if not domain:
        return False
    return domain.strip().lower() in personal_domains()


def classify(email: str | None) -> str | None:
    """Return the corporate domain of an email.

    None when the email is missing, malformed, or on a personal
    mailbox provider.
    """
    domain = extract_domain(email)
    if domain is None or is_personal_domain(domain):
        return None
    return domain


def looks_like_domain(value: str | None) -> bool:
    """Check whether a free-text value is a bare domain name."""
    if not value:
        return False
    return bool(DOMAIN_PATTERN.match(value.strip().lower()))


def company_name_from_domain(domain: str) -> str:
    """Derive a display name from the first label of a domain.

    'acme-labs.io' -> 'Acme-Labs'
    """
    label = domain.strip().lower().split(".", 1)[0]
    return label.title()
