"""CLI commands for entity resolution.

Usage:
    crmres resolve run [--owner OWNER] [--limit N] [--json]
    crmres resolve orphans [--owner OWNER] [--dry-run] [--json]
    crmres resolve link CONTACT_ID COMPANY_ID
    crmres resolve override EMAIL COMPANY_NAME [--owner OWNER]
    crmres resolve company VALUE [--owner OWNER] [--fallback-name NAME]
    crmres resolve release-stale [--max-age-hours N]
"""

import json
import sys
from datetime import timedelta
from uuid import UUID

import click

from ..logging import setup_logging


@click.group(name="resolve")
def cli():
    """Entity resolution commands."""
    setup_logging()


@cli.command(name="run")
@click.option("--owner", type=str, default=None, help="Only deals owned by this user")
@click.option("--limit", type=int, default=None, help="Maximum deals to process")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def run(owner: str | None, limit: int | None, as_json: bool):
    """Resolve companies and contacts for unresolved deals.

    Holds the bulk lease for the duration of the run; incremental
    resolution defers while it is held. Deals that cannot be resolved
    are recorded in the review queue.

    Examples:

        crmres resolve run

        crmres resolve run --owner user-42 --limit 1000
    """
    from ..resolution.errors import BulkRunInProgressError
    from ..resolution.migration import RunFilter, run_resolution

    try:
        result = run_resolution(RunFilter(owner_id=owner, limit=limit))
    except BulkRunInProgressError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo("\nResolution Run Complete")
    click.echo("=" * 50)
    click.echo(f"  Run ID: {result['run_id']}")
    click.echo("  Resolved: ", nl=False)
    click.secho(str(result["successCount"]), fg="green")
    click.echo("  Flagged for review: ", nl=False)
    click.secho(str(result["errorCount"]), fg="yellow" if result["errorCount"] else "white")
    click.echo(f"  Skipped: {result['skippedCount']}")

    if result["reviewEntries"]:
        by_reason: dict[str, int] = {}
        for entry in result["reviewEntries"]:
            by_reason[entry["reason"]] = by_reason.get(entry["reason"], 0) + 1
        click.echo("\nFlagged by Reason:")
        for reason, count in sorted(by_reason.items()):
            click.echo(f"  {reason}: {count}")


@cli.command(name="orphans")
@click.option("--owner", type=str, default=None, help="Only contacts owned by this user")
@click.option("--dry-run", is_flag=True, help="Report links without writing them")
@click.option("--min-score", type=int, default=None, help="Minimum fuzzy score (0-100)")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def orphans(owner: str | None, dry_run: bool, min_score: int | None, as_json: bool):
    """Link company-less contacts to name-only companies.

    Examples:

        crmres resolve orphans --dry-run

        crmres resolve orphans --owner user-42
    """
    from ..resolution.orphans import OrphanLinker

    try:
        report = OrphanLinker(min_score=min_score).run(owner_id=owner, dry_run=dry_run)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(report.model_dump_json(indent=2))
        return

    title = "Orphan Linking (dry run)" if dry_run else "Orphan Linking"
    click.echo(f"\n{title}")
    click.echo("=" * 50)
    click.echo(f"  Orphans found: {report.orphans_found}")
    click.echo(f"  Linked: {report.linked_count}")
    for method, count in sorted(report.by_method.items()):
        click.echo(f"    - {method}: {count}")
    click.echo(f"  Unlinked: {report.unlinked_count}")
    click.echo(f"  Coverage: {report.coverage_percent:.1f}%")

    if report.suggestions:
        click.echo("\nNeeds Confirmation:")
        for suggestion in report.suggestions:
            click.echo(f"\n  {suggestion.full_name} <{suggestion.email}> ({suggestion.contact_id})")
            for candidate in suggestion.candidates:
                click.echo(f"    {candidate.score:5.1f}  {candidate.name} ({candidate.company_id})")
        click.echo("\nUse 'crmres resolve link <contact_id> <company_id>' to confirm")


@cli.command(name="link")
@click.argument("contact_id", type=click.UUID)
@click.argument("company_id", type=click.UUID)
def link(contact_id: UUID, company_id: UUID):
    """Confirm a suggested orphan link."""
    from ..resolution.orphans import OrphanLinker

    try:
        linked = OrphanLinker().confirm_link(contact_id, company_id)
    except (LookupError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if linked:
        click.secho(f"Linked contact {contact_id} to company {company_id}.", fg="green")
    else:
        click.echo(f"Contact {contact_id} already belongs to company {company_id}.")


@cli.command(name="override")
@click.argument("email")
@click.argument("company_name")
@click.option("--owner", type=str, default=None, help="Owner scope of the override")
def override(email: str, company_name: str, owner: str | None):
    """Pin an orphan contact's email to a company name."""
    from ..resolution.orphans import OrphanLinker

    try:
        OrphanLinker().add_override(email, company_name, owner)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Override saved: {email.strip().lower()} -> {company_name}")


@cli.command(name="company")
@click.argument("value")
@click.option("--owner", type=str, default=None, help="Owner scope for name-based companies")
@click.option("--fallback-name", type=str, default=None, help="Name used for personal domains")
def company(value: str, owner: str | None, fallback_name: str | None):
    """Resolve a single email, domain, or company name to a company.

    Examples:

        crmres resolve company jane@acme.com

        crmres resolve company jane@gmail.com --fallback-name "Jane Consulting"
    """
    from ..resolution.company import resolve_company
    from ..resolution.errors import ResolutionError

    try:
        company_id = resolve_company(value, owner, fallback_name=fallback_name)
    except ResolutionError as e:
        click.echo(f"Error [{e.reason.value}]: {e.message}", err=True)
        sys.exit(1)

    if company_id is None:
        click.echo("No company: personal domain and no fallback name.")
        return

    click.echo(str(company_id))


@cli.command(name="release-stale")
@click.option("--max-age-hours", type=float, default=6.0, help="Age after which a run is stale")
def release_stale(max_age_hours: float):
    """Release bulk leases held by runs that died."""
    from ..resolution.lease import BulkRunLease

    released = BulkRunLease().release_stale_runs(timedelta(hours=max_age_hours))
    click.echo(f"Released {released} stale run(s).")
