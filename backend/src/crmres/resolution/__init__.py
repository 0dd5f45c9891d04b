"""Entity resolution module for CRMRES.

Resolves the free-text company and contact fields on deals into canonical
company and contact rows, in bulk for historical data and incrementally
as contacts and activities are written.
"""

from .company import CompanyResolver, next_available_name, resolve_company
from .contact import ContactResolver, attach_company, resolve_contact
from .domains import (
    PERSONAL_EMAIL_DOMAINS,
    classify,
    extract_domain,
    is_personal_domain,
    is_valid_email,
    normalize_email,
)
from .errors import (
    BulkRunInProgressError,
    EntityCreationFailedError,
    FuzzyMatchUncertainError,
    InvalidEmailError,
    LockTimeoutError,
    NoEmailError,
    ResolutionError,
)
from .hooks import ACTIVITY_STAGES, IncrementalHooks, StageAdvancer
from .lease import BulkRunLease
from .locks import KeyedLock, get_default_locks
from .migration import (
    FlaggedDeal,
    MigrationOrchestrator,
    RunFilter,
    RunResult,
    run_resolution,
)
from .orphans import (
    CompanyCandidate,
    CoverageReport,
    OrphanLink,
    OrphanLinker,
    OrphanSuggestion,
)

__all__ = [
    # Domains
    "PERSONAL_EMAIL_DOMAINS",
    "classify",
    "extract_domain",
    "is_personal_domain",
    "is_valid_email",
    "normalize_email",
    # Resolvers
    "CompanyResolver",
    "ContactResolver",
    "attach_company",
    "next_available_name",
    "resolve_company",
    "resolve_contact",
    # Errors
    "BulkRunInProgressError",
    "EntityCreationFailedError",
    "FuzzyMatchUncertainError",
    "InvalidEmailError",
    "LockTimeoutError",
    "NoEmailError",
    "ResolutionError",
    # Concurrency
    "BulkRunLease",
    "KeyedLock",
    "get_default_locks",
    # Bulk migration
    "FlaggedDeal",
    "MigrationOrchestrator",
    "RunFilter",
    "RunResult",
    "run_resolution",
    # Incremental hooks
    "ACTIVITY_STAGES",
    "IncrementalHooks",
    "StageAdvancer",
    # Orphan linking
    "CompanyCandidate",
    "CoverageReport",
    "OrphanLink",
    "OrphanLinker",
    "OrphanSuggestion",
]
