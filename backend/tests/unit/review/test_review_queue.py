"""Unit tests for the deal review queue.

Run with: pytest tests/unit/review/test_review_queue.py -v
"""

from uuid import uuid4

import pytest

from crmres.models.base import ResolutionState, ReviewReason, ReviewStatus
from crmres.review.queue import ReviewEntryNotFoundError, ReviewTransitionError

from tests.fixtures.deals import deal


@pytest.fixture
def flag(review_queue, session_scope, db):
    """Flag a deal and return the entry ID."""

    def _flag(deal_id, reason=ReviewReason.NO_EMAIL, **kwargs):
        with session_scope() as session:
            return review_queue.flag(session, db.deal(deal_id), reason, **kwargs)

    return _flag


class TestFlagging:
    """Tests for recording review entries."""

    def test_flag_copies_original_fields(self, add_deals, flag, review_queue):
        (deal_id,) = add_deals(deal("bad-email", "Broken Ltd", "Bad Address"))

        entry_id = flag(deal_id, ReviewReason.INVALID_EMAIL, notes="malformed")

        entry = review_queue.get_entry(entry_id)
        assert entry.deal_id == deal_id
        assert entry.reason == ReviewReason.INVALID_EMAIL
        assert entry.status == ReviewStatus.PENDING
        assert entry.original_company == "Broken Ltd"
        assert entry.original_contact_name == "Bad Address"
        assert entry.original_contact_email == "bad-email"
        assert entry.resolution_notes == "malformed"

    def test_reflagging_updates_pending_entry(self, add_deals, flag, db):
        """Test that a deal has at most one pending entry."""
        (deal_id,) = add_deals(deal(None, "Nameless"))

        first = flag(deal_id, ReviewReason.NO_EMAIL)
        second = flag(deal_id, ReviewReason.ENTITY_CREATION_FAILED, notes="retry failed")

        assert first == second
        (entry,) = db.review_entries()
        assert entry.reason == ReviewReason.ENTITY_CREATION_FAILED

    def test_close_for_deal(self, add_deals, flag, review_queue, session_scope):
        (deal_id,) = add_deals(deal(None, "Nameless"))
        entry_id = flag(deal_id)

        with session_scope() as session:
            assert review_queue.close_for_deal(session, deal_id, notes="fixed") == 1

        entry = review_queue.get_entry(entry_id)
        assert entry.status == ReviewStatus.RESOLVED
        assert entry.resolved_by == "system"


class TestListing:
    """Tests for paging and stats."""

    def test_get_pending_newest_first(self, add_deals, flag, review_queue):
        ids = add_deals(*(deal(None, f"Company {i}", minutes=i) for i in range(5)))
        entry_ids = [flag(deal_id) for deal_id in ids]

        entries, total = review_queue.get_pending(limit=2, offset=0)

        assert total == 5
        assert [e.id for e in entries] == [entry_ids[4], entry_ids[3]]

        entries, _ = review_queue.get_pending(limit=2, offset=4)
        assert [e.id for e in entries] == [entry_ids[0]]

    def test_get_pending_by_reason(self, add_deals, flag, review_queue):
        first, second = add_deals(deal(None, "A"), deal("bad", "B"))
        flag(first, ReviewReason.NO_EMAIL)
        flag(second, ReviewReason.INVALID_EMAIL)

        entries, total = review_queue.get_pending(reason=ReviewReason.INVALID_EMAIL)

        assert total == 1
        assert entries[0].deal_id == second

    def test_get_entry_unknown(self, review_queue):
        assert review_queue.get_entry(uuid4()) is None

    def test_stats(self, add_deals, flag, review_queue):
        a, b, c = add_deals(deal(None, "A"), deal(None, "B"), deal("bad", "C"))
        flag(a, ReviewReason.NO_EMAIL)
        archived = flag(b, ReviewReason.NO_EMAIL)
        flag(c, ReviewReason.INVALID_EMAIL)
        review_queue.archive_entry(archived)

        stats = review_queue.stats()

        assert stats.total_pending == 2
        assert stats.total_archived == 1
        assert stats.total_resolved == 0
        assert stats.by_reason == {"no_email": 1, "invalid_email": 1}


class TestTriage:
    """Tests for manual resolution and archiving."""

    def test_resolve_entry_updates_deal(self, add_deals, flag, review_queue, db):
        (deal_id,) = add_deals(deal(None, "Nameless"))
        entry_id = flag(deal_id)
        company_id = db.insert_company("Nameless")
        contact_id = db.insert_contact("someone@nameless.com", company_id=company_id)

        entry = review_queue.resolve_entry(
            entry_id, company_id, contact_id, resolved_by="analyst", notes="found via LinkedIn"
        )

        assert entry.status == ReviewStatus.RESOLVED
        assert entry.resolved_by == "analyst"
        assert entry.resolved_at is not None
        assert entry.resolution_notes == "found via LinkedIn"

        resolved = db.deal(deal_id)
        assert resolved.company_id == company_id
        assert resolved.primary_contact_id == contact_id
        assert resolved.resolution_state == ResolutionState.RESOLVED

    def test_resolve_unknown_entry(self, review_queue, db):
        with pytest.raises(ReviewEntryNotFoundError):
            review_queue.resolve_entry(uuid4(), uuid4(), uuid4())

    def test_resolve_with_unknown_ids(self, add_deals, flag, review_queue, db):
        (deal_id,) = add_deals(deal(None, "Nameless"))
        entry_id = flag(deal_id)

        with pytest.raises(ReviewTransitionError):
            review_queue.resolve_entry(entry_id, uuid4(), uuid4())

        assert db.deal(deal_id).company_id is None
        assert review_queue.get_entry(entry_id).status == ReviewStatus.PENDING

    def test_archive_entry(self, add_deals, flag, review_queue, db):
        (deal_id,) = add_deals(deal(None, "Nameless"))
        entry_id = flag(deal_id)

        entry = review_queue.archive_entry(entry_id, notes="duplicate deal")

        assert entry.status == ReviewStatus.ARCHIVED
        assert entry.resolution_notes == "duplicate deal"
        assert db.deal(deal_id).company_id is None

    def test_closed_entries_cannot_transition(self, add_deals, flag, review_queue):
        (deal_id,) = add_deals(deal(None, "Nameless"))
        entry_id = flag(deal_id)
        review_queue.archive_entry(entry_id)

        with pytest.raises(ReviewTransitionError):
            review_queue.archive_entry(entry_id)
