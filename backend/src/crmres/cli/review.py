"""CLI commands for review queue triage.

Usage:
    crmres review list [--reason REASON] [--limit N] [--offset N]
    crmres review resolve ENTRY_ID --company-id ID --contact-id ID
    crmres review archive ENTRY_ID [--notes TEXT]
    crmres review stats
"""

import sys
from uuid import UUID

import click

from ..models.base import ReviewReason


@click.group(name="review")
def cli():
    """Review queue commands."""
    pass


@cli.command(name="list")
@click.option(
    "--reason",
    type=click.Choice([r.value for r in ReviewReason]),
    default=None,
    help="Filter by reason code",
)
@click.option("--limit", type=int, default=20, help="Maximum entries to show")
@click.option("--offset", type=int, default=0, help="Entries to skip")
def list_entries(reason: str | None, limit: int, offset: int):
    """List pending review entries, newest first.

    Examples:

        crmres review list

        crmres review list --reason invalid_email
    """
    from ..review.queue import ReviewQueue

    try:
        entries, total = ReviewQueue().get_pending(
            limit=limit,
            offset=offset,
            reason=ReviewReason(reason) if reason else None,
        )
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not entries:
        click.echo("No pending review entries.")
        return

    click.echo(f"\nPending Review Entries ({len(entries)} of {total})")
    click.echo("=" * 70)

    for entry in entries:
        click.echo(f"\nEntry: {entry.id}")
        click.echo("  Reason: ", nl=False)
        click.secho(entry.reason.value, fg="yellow")
        click.echo(f"  Deal: {entry.deal_id}")
        click.echo(f"  Company: {entry.original_company or '-'}")
        click.echo(
            f"  Contact: {entry.original_contact_name or '-'} "
            f"<{entry.original_contact_email or '-'}>"
        )
        if entry.suggested_company_id:
            click.echo(f"  Suggested company: {entry.suggested_company_id}")
        if entry.suggested_contact_id:
            click.echo(f"  Suggested contact: {entry.suggested_contact_id}")
        if entry.resolution_notes:
            click.echo(f"  Notes: {entry.resolution_notes}")

    click.echo("\n" + "=" * 70)
    click.echo("Use 'crmres review resolve <entry_id> --company-id ... --contact-id ...' to resolve")


@cli.command(name="resolve")
@click.argument("entry_id", type=click.UUID)
@click.option("--company-id", type=click.UUID, required=True, help="Company to assign")
@click.option("--contact-id", type=click.UUID, required=True, help="Contact to assign")
@click.option("--reviewer", type=str, default="cli-user", help="Reviewer username")
@click.option("--notes", type=str, default=None, help="Resolution notes")
def resolve_entry(
    entry_id: UUID,
    company_id: UUID,
    contact_id: UUID,
    reviewer: str,
    notes: str | None,
):
    """Resolve a review entry by assigning the deal's company and contact."""
    from ..review.queue import ReviewEntryNotFoundError, ReviewQueue, ReviewTransitionError

    try:
        entry = ReviewQueue().resolve_entry(
            entry_id,
            company_id=company_id,
            contact_id=contact_id,
            resolved_by=reviewer,
            notes=notes,
        )
    except (ReviewEntryNotFoundError, ReviewTransitionError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("\nEntry resolved successfully!")
    click.echo(f"  Entry ID: {entry.id}")
    click.echo(f"  Deal ID: {entry.deal_id}")
    click.echo(f"  Reviewer: {reviewer}")
    click.echo("  Status: ", nl=False)
    click.secho(entry.status.value, fg="green")


@cli.command(name="archive")
@click.argument("entry_id", type=click.UUID)
@click.option("--notes", type=str, default=None, help="Reason for dismissal")
def archive_entry(entry_id: UUID, notes: str | None):
    """Dismiss a review entry without resolving the deal."""
    from ..review.queue import ReviewEntryNotFoundError, ReviewQueue, ReviewTransitionError

    try:
        entry = ReviewQueue().archive_entry(entry_id, notes=notes)
    except (ReviewEntryNotFoundError, ReviewTransitionError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Entry {entry.id} archived.")


@cli.command(name="stats")
def stats():
    """Show review queue statistics."""
    from ..review.queue import ReviewQueue

    try:
        result = ReviewQueue().stats()
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("\nReview Queue Statistics")
    click.echo("=" * 50)
    click.echo(f"  Pending: {result.total_pending}")
    click.echo(f"  Resolved: {result.total_resolved}")
    click.echo(f"  Archived: {result.total_archived}")

    if result.by_reason:
        click.echo("\nPending by Reason:")
        for reason, count in sorted(result.by_reason.items()):
            click.echo(f"  {reason}: {count}")
