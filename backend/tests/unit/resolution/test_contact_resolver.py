"""Unit tests for contact resolution.

Run with: pytest tests/unit/resolution/test_contact_resolver.py -v
"""

import pytest
from sqlalchemy.exc import IntegrityError

from crmres.resolution import contact as contact_module
from crmres.resolution.contact import attach_company, resolve_contact, split_display_name
from crmres.resolution.errors import EntityCreationFailedError, InvalidEmailError, NoEmailError


class TestSplitDisplayName:
    """Tests for first/last name splitting."""

    @pytest.mark.parametrize(
        "display_name,expected",
        [
            ("Jane Doe", ("Jane", "Doe")),
            ("Mary Ann Smith", ("Mary", "Ann Smith")),
            ("  Cher  ", ("Cher", None)),
            ("", (None, None)),
            (None, (None, None)),
        ],
    )
    def test_split(self, display_name, expected):
        assert split_display_name(display_name) == expected


class TestContactCreation:
    """Tests for creating contacts."""

    def test_creates_contact(self, contact_resolver, company_resolver, db):
        company_id = company_resolver.resolve("acme.com", "Acme", "owner-1")

        contact_id = contact_resolver.resolve("Jane@Acme.com", "Jane Doe", company_id, "owner-1")

        contact = db.contact(contact_id)
        assert contact.email == "jane@acme.com"
        assert contact.first_name == "Jane"
        assert contact.last_name == "Doe"
        assert contact.company_id == company_id
        assert contact.owner_id == "owner-1"

    def test_first_contact_is_primary(self, contact_resolver, company_resolver, db):
        """Test that only the first contact of a company becomes primary."""
        company_id = company_resolver.resolve("acme.com", "Acme", "owner-1")

        first = contact_resolver.resolve("jane@acme.com", "Jane Doe", company_id, "owner-1")
        second = contact_resolver.resolve("john@acme.com", "John Roe", company_id, "owner-1")

        assert db.contact(first).is_primary
        assert not db.contact(second).is_primary

    def test_contact_without_company_is_not_primary(self, contact_resolver, db):
        contact_id = contact_resolver.resolve("jane@gmail.com", "Jane Doe", None, "owner-1")

        contact = db.contact(contact_id)
        assert contact.company_id is None
        assert not contact.is_primary

    def test_missing_email_raises(self, contact_resolver):
        with pytest.raises(NoEmailError):
            contact_resolver.resolve(None, "Jane", None, "owner-1")
        with pytest.raises(NoEmailError):
            contact_resolver.resolve("   ", "Jane", None, "owner-1")

    def test_invalid_email_raises(self, contact_resolver, db):
        with pytest.raises(InvalidEmailError):
            contact_resolver.resolve("not-an-email", "Jane", None, "owner-1")
        assert db.contacts() == []


class TestContactReuse:
    """Tests for resolving existing contacts."""

    def test_same_email_returns_same_contact(self, contact_resolver, db):
        first = contact_resolver.resolve("jane@acme.com", "Jane Doe", None, "owner-1")
        second = contact_resolver.resolve("JANE@acme.com", "Someone Else", None, "owner-2")

        assert first == second
        assert len(db.contacts()) == 1
        assert db.contact(first).first_name == "Jane"

    def test_fills_missing_company(self, contact_resolver, company_resolver, db):
        """Test that an unattached contact is attached when a company is supplied."""
        contact_id = contact_resolver.resolve("jane@gmail.com", "Jane Doe", None, "owner-1")
        company_id = company_resolver.resolve(None, "Jane Co", "owner-1")

        assert contact_resolver.resolve("jane@gmail.com", None, company_id, "owner-1") == contact_id
        assert db.contact(contact_id).company_id == company_id

    def test_never_reassigns_company(self, contact_resolver, company_resolver, db):
        """Test that an attached contact keeps its original company."""
        acme = company_resolver.resolve("acme.com", "Acme", "owner-1")
        other = company_resolver.resolve(None, "Other Co", "owner-1")

        contact_id = contact_resolver.resolve("jane@acme.com", "Jane Doe", acme, "owner-1")
        again = contact_resolver.resolve("jane@acme.com", "Jane Doe", other, "owner-1")

        assert again == contact_id
        assert db.contact(contact_id).company_id == acme

    def test_attach_company_only_fills_null(self, session_scope, db):
        acme = db.insert_company("Acme", domain="acme.com")
        other = db.insert_company("Other")
        contact_id = db.insert_contact("jane@acme.com")

        with session_scope() as session:
            assert attach_company(session, contact_id, acme)
        with session_scope() as session:
            assert not attach_company(session, contact_id, other)

        assert db.contact(contact_id).company_id == acme

    def test_resolve_contact_helper(self, contact_resolver, db):
        contact_id = resolve_contact("jane@acme.com", "Jane", None, "owner-1", resolver=contact_resolver)
        assert db.contact(contact_id).email == "jane@acme.com"


class TestCreateOrFind:
    """Tests for unique-violation handling."""

    def test_race_requery_returns_winner(self, contact_resolver, db, monkeypatch):
        """Test that losing an insert race on email returns the winner's row."""
        winner = {}
        real_find = contact_module.find_contact

        def find_after_rival_commits(session, email, company_id=None):
            if not winner:
                winner["id"] = db.insert_contact(email, "Rival", None)
                return None
            return real_find(session, email, company_id)

        monkeypatch.setattr(contact_module, "find_contact", find_after_rival_commits)

        contact_id = contact_resolver.resolve("jane@acme.com", "Jane Doe", None, "owner-1")

        assert contact_id == winner["id"]
        assert len(db.contacts()) == 1

    def test_lost_primary_race_creates_secondary(self, contact_resolver, db, monkeypatch):
        """Test that a contact losing the primary race is stored as non-primary."""
        company_id = db.insert_company("Acme", domain="acme.com")
        real_insert = contact_resolver._insert
        raced = []

        def insert_after_rival(session, email, display_name, company, owner_id, is_primary):
            if not raced:
                # A rival primary lands after the count but before our insert
                raced.append(real_insert(session, "rival@acme.com", None, company, None, True))
            return real_insert(session, email, display_name, company, owner_id, is_primary)

        monkeypatch.setattr(contact_resolver, "_insert", insert_after_rival)

        contact_id = contact_resolver.resolve("jane@acme.com", "Jane Doe", company_id, "owner-1")

        contacts = {c.email: c for c in db.contacts()}
        assert contacts["rival@acme.com"].is_primary
        assert not contacts["jane@acme.com"].is_primary
        assert contacts["jane@acme.com"].id == contact_id

    def test_persistent_failure_raises(self, contact_resolver, monkeypatch):
        def always_conflict(*args, **kwargs):
            raise IntegrityError("INSERT", {}, Exception("conflict"))

        monkeypatch.setattr(contact_resolver, "_insert", always_conflict)

        with pytest.raises(EntityCreationFailedError):
            contact_resolver.resolve("jane@acme.com", "Jane", None, "owner-1")
