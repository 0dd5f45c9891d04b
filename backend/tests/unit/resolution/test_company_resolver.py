"""Unit tests for company resolution.

Tests find-or-create by domain and by name, collision suffixing, and the
create-or-find retry against a real SQLite database.

Run with: pytest tests/unit/resolution/test_company_resolver.py -v
"""

from datetime import timedelta

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from crmres.db import companies, utcnow
from crmres.resolution import company as company_module
from crmres.resolution.company import next_available_name, resolve_company
from crmres.resolution.errors import EntityCreationFailedError


class TestDomainResolution:
    """Tests for domain-keyed companies."""

    def test_creates_company_for_new_domain(self, company_resolver, db):
        company_id = company_resolver.resolve("acme.com", "Acme Corp", "owner-1")

        company = db.company(company_id)
        assert company.name == "Acme Corp"
        assert company.domain == "acme.com"
        assert company.owner_id == "owner-1"

    def test_name_derived_from_domain_when_missing(self, company_resolver, db):
        company_id = company_resolver.resolve("acme-labs.io", None, "owner-1")
        assert db.company(company_id).name == "Acme-Labs"

    def test_same_domain_returns_same_company(self, company_resolver, db):
        """Test that a domain maps to exactly one company regardless of case."""
        first = company_resolver.resolve("acme.com", "Acme", "owner-1")
        second = company_resolver.resolve("ACME.com", "Something Else", "owner-2")

        assert first == second
        assert len(db.companies()) == 1

    def test_domain_lookup_ignores_owner(self, company_resolver, db):
        db.insert_company("Acme", domain="acme.com", owner_id="owner-9")
        company_id = company_resolver.resolve("acme.com", None, "owner-1")
        assert db.company(company_id).owner_id == "owner-9"

    def test_personal_domain_falls_back_to_name(self, company_resolver, db):
        """Test that a personal domain never keys a company."""
        company_id = company_resolver.resolve("gmail.com", "Smith Consulting", "owner-1")

        company = db.company(company_id)
        assert company.domain is None
        assert company.name == "Smith Consulting"

    def test_personal_domain_without_name_is_none(self, company_resolver, db):
        assert company_resolver.resolve("gmail.com", None, "owner-1") is None
        assert company_resolver.resolve(None, "   ", "owner-1") is None
        assert db.companies() == []


class TestNameResolution:
    """Tests for name-keyed companies."""

    def test_name_match_is_case_insensitive(self, company_resolver, db):
        first = company_resolver.resolve(None, "Smith Consulting", "owner-1")
        second = company_resolver.resolve(None, "smith consulting", "owner-1")

        assert first == second
        assert len(db.companies()) == 1

    def test_name_match_is_owner_scoped(self, company_resolver, db):
        first = company_resolver.resolve(None, "Smith Consulting", "owner-1")
        second = company_resolver.resolve(None, "Smith Consulting", "owner-2")

        assert first != second
        assert {c.owner_id for c in db.companies()} == {"owner-1", "owner-2"}

    def test_earliest_created_wins(self, company_resolver, db):
        """Test that ties between same-named unowned companies go to the oldest."""
        now = utcnow()
        older = db.insert_company("Smith", created_at=now - timedelta(days=2))
        db.insert_company("smith", created_at=now - timedelta(days=1))

        assert company_resolver.resolve(None, "SMITH", None) == older

    def test_non_ascii_name_match_is_case_insensitive(self, company_resolver, db):
        """Test that accented names fold the same way as ASCII ones."""
        first = company_resolver.resolve(None, "ÉCOLE Lumière", "owner-1")
        second = company_resolver.resolve(None, "école lumière", "owner-1")

        assert first == second
        assert [c.name for c in db.companies()] == ["ÉCOLE Lumière"]

    def test_name_key_is_casefolded(self, company_resolver, session_scope):
        company_id = company_resolver.resolve(None, "Straße GmbH", "owner-1")

        assert company_resolver.resolve(None, "STRASSE GMBH", "owner-1") == company_id
        with session_scope() as session:
            name_key = session.execute(
                sa.select(companies.c.name_key).where(companies.c.id == company_id)
            ).scalar_one()
        assert name_key == "strasse gmbh"

    def test_case_variants_violate_owner_name_constraint(self, db):
        """Test that the database rejects a second 'Acme' spelled differently."""
        db.insert_company("Acme", owner_id="owner-1")

        with pytest.raises(IntegrityError):
            db.insert_company("ACME", owner_id="owner-1")


class TestNameCollisions:
    """Tests for suffixing names already used in the owner scope."""

    def test_domain_company_with_taken_name_is_suffixed(self, company_resolver, db):
        """Test that a new domain reusing an existing name gets ' (2)'."""
        db.insert_company("Acme", domain="acme.com", owner_id="owner-1")

        company_id = company_resolver.resolve("acme.io", "Acme", "owner-1")

        assert db.company(company_id).name == "Acme (2)"
        assert db.company(company_id).domain == "acme.io"

    def test_suffixes_increment(self, company_resolver, db):
        db.insert_company("Acme", domain="acme.com", owner_id="owner-1")
        company_resolver.resolve("acme.io", "Acme", "owner-1")
        third = company_resolver.resolve("acme.net", "acme", "owner-1")

        assert db.company(third).name == "acme (3)"

    def test_non_ascii_case_variant_is_suffixed(self, company_resolver, db):
        db.insert_company("École", domain="ecole.fr", owner_id="owner-1")

        company_id = company_resolver.resolve("ecole.ca", "ÉCOLE", "owner-1")

        assert db.company(company_id).name == "ÉCOLE (2)"

    def test_next_available_name(self, session_scope, db):
        db.insert_company("Acme", owner_id="owner-1")
        db.insert_company("Acme (4)", owner_id="owner-1")
        db.insert_company("Acme Labs", owner_id="owner-1")
        db.insert_company("Acme_", owner_id="owner-1")

        with session_scope() as session:
            assert next_available_name(session, "Acme", "owner-1") == "Acme (5)"
            assert next_available_name(session, "Acme", "owner-2") == "Acme"
            assert next_available_name(session, "Beta", "owner-1") == "Beta"

    def test_lookalike_prefixes_are_not_counted(self, session_scope, db):
        db.insert_company("100% Organic (2)", owner_id="owner-1")
        with session_scope() as session:
            assert next_available_name(session, "100_ Organic", "owner-1") == "100_ Organic"


class TestCreateOrFind:
    """Tests for the unique-violation re-query."""

    def test_race_requery_returns_winner(self, company_resolver, db, monkeypatch):
        """Test that losing an insert race returns the winner's row."""
        winner = {}
        real_find = company_module.find_by_domain

        def find_after_rival_commits(session, domain):
            if not winner:
                # Another writer commits the same domain between lookup and insert
                winner["id"] = db.insert_company("Acme Rival", domain=domain, owner_id="owner-2")
                return None
            return real_find(session, domain)

        monkeypatch.setattr(company_module, "find_by_domain", find_after_rival_commits)

        company_id = company_resolver.resolve("acme.com", "Acme", "owner-1")

        assert company_id == winner["id"]
        assert len(db.companies()) == 1

    def test_persistent_failure_raises(self, company_resolver, monkeypatch):
        """Test that a second failed insert is a genuine creation failure."""

        def always_conflict(session, name, domain, owner_id):
            raise IntegrityError("INSERT", {}, Exception("conflict"))

        monkeypatch.setattr(company_resolver, "_insert", always_conflict)

        with pytest.raises(EntityCreationFailedError) as exc_info:
            company_resolver.resolve(None, "Acme", "owner-1")

        assert exc_info.value.details["name"] == "Acme"


class TestResolveCompanyHelper:
    """Tests for resolve_company free-text dispatch."""

    def test_email_input(self, company_resolver, db):
        company_id = resolve_company("jane@acme.com", "owner-1", resolver=company_resolver)
        assert db.company(company_id).domain == "acme.com"

    def test_personal_email_uses_fallback(self, company_resolver, db):
        company_id = resolve_company(
            "jane@gmail.com", "owner-1", fallback_name="Jane Co", resolver=company_resolver
        )
        assert db.company(company_id).name == "Jane Co"
        assert resolve_company("jane@gmail.com", "owner-1", resolver=company_resolver) is None

    def test_bare_domain_input(self, company_resolver, db):
        company_id = resolve_company("acme.com", "owner-1", resolver=company_resolver)
        assert db.company(company_id).name == "Acme"

    def test_name_input(self, company_resolver, db):
        company_id = resolve_company("Acme Corp", "owner-1", resolver=company_resolver)
        company = db.company(company_id)
        assert company.name == "Acme Corp"
        assert company.domain is None
