"""Incremental resolution hooks.

Synchronous call sites fired when a contact or an activity is about to be
written. Each runs one resolution through the same resolvers the bulk run
uses. While a bulk run holds the lease, incremental writes are deferred
and the record passes through unchanged. A hook never fails the write it
is attached to.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from ..db import SessionScope, get_db_session
from ..logging import get_context_logger
from ..models.base import ResolutionMode
from ..models.events import ActivityType, ActivityWrite, ContactIdentifierType, ContactWrite
from .company import CompanyResolver
from .contact import ContactResolver
from .domains import classify, is_valid_email, normalize_email
from .errors import ResolutionError
from .lease import BulkRunLease
from .locks import KeyedLock, get_default_locks

logger = get_context_logger(__name__)

# Pipeline stage each activity kind advances a deal to
ACTIVITY_STAGES: dict[ActivityType, str] = {
    ActivityType.MEETING: "SQL",
    ActivityType.PROPOSAL: "Opportunity",
    ActivityType.SALE: "Signed",
}


class StageAdvancer(ABC):
    """Collaborator that moves a deal through the pipeline.

    Owned by the surrounding CRM; receives the resolver's output.
    """

    @abstractmethod
    def advance(
        self,
        activity: ActivityWrite,
        contact_id: UUID,
        company_id: UUID | None,
        target_stage: str,
    ) -> None:
        """Advance (or create) the deal associated with an activity."""
        ...


class IncrementalHooks:
    """Contact and activity write hooks."""

    def __init__(
        self,
        session_scope: SessionScope | None = None,
        locks: KeyedLock | None = None,
        company_resolver: CompanyResolver | None = None,
        contact_resolver: ContactResolver | None = None,
        lease: BulkRunLease | None = None,
        stage_advancer: StageAdvancer | None = None,
    ):
        session_scope = session_scope or get_db_session
        locks = locks or get_default_locks()
        self.company_resolver = company_resolver or CompanyResolver(session_scope, locks)
        self.contact_resolver = contact_resolver or ContactResolver(session_scope, locks)
        self.lease = lease or BulkRunLease(session_scope)
        self.stage_advancer = stage_advancer

    def _suspended(self, mode: ResolutionMode) -> bool:
        if mode is not ResolutionMode.INCREMENTAL:
            return False
        run_id = self.lease.active_run()
        if run_id is not None:
            logger.info(
                "Incremental resolution deferred during bulk run",
                extra={"run_id": str(run_id)},
            )
            return True
        return False

    def on_contact_write(
        self,
        contact: ContactWrite,
        mode: ResolutionMode = ResolutionMode.INCREMENTAL,
    ) -> ContactWrite:
        """Fill a contact's company from its email domain before it is written.

        Returns:
            The contact, with ``company_id`` set when a corporate domain
            resolved to a company
        """
        if contact.company_id is not None or not contact.email:
            return contact

        domain = classify(contact.email)
        if domain is None:
            return contact

        if self._suspended(mode):
            return contact

        try:
            company_id = self.company_resolver.resolve(domain, None, contact.owner_id, mode)
        except ResolutionError as e:
            logger.warning(
                f"Company resolution failed for contact {contact.email}: {e.message}",
                extra={"reason": e.reason.value},
            )
            return contact

        return contact.model_copy(update={"company_id": company_id})

    def on_activity_write(
        self,
        activity: ActivityWrite,
        mode: ResolutionMode = ResolutionMode.INCREMENTAL,
    ) -> ActivityWrite:
        """Resolve an activity's contact and company before it is written.

        Only meetings, proposals, and sales identified by email are
        processed; the resolved IDs are handed to the stage advancer.
        """
        if activity.type not in ACTIVITY_STAGES:
            return activity
        if activity.contact_identifier_type is not ContactIdentifierType.EMAIL:
            return activity

        email = normalize_email(activity.contact_identifier)
        if email is None or not is_valid_email(email):
            return activity

        if self._suspended(mode):
            return activity

        domain = classify(email)
        try:
            company_id = self.company_resolver.resolve(
                domain, activity.client_name, activity.user_id, mode
            )
            # A personal mailbox never ties the contact to the client company
            contact_id = self.contact_resolver.resolve(
                email, None, company_id if domain else None, activity.user_id, mode
            )
        except ResolutionError as e:
            logger.warning(
                f"Resolution failed for activity contact {email}: {e.message}",
                extra={"reason": e.reason.value, "activity_type": activity.type.value},
            )
            return activity

        resolved = activity.model_copy(update={"contact_id": contact_id, "company_id": company_id})

        if self.stage_advancer is not None:
            try:
                self.stage_advancer.advance(
                    resolved, contact_id, company_id, ACTIVITY_STAGES[activity.type]
                )
            except Exception:
                logger.exception(f"Stage advancement failed for activity contact {email}")

        return resolved
