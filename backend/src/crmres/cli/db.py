"""CLI commands for database setup and deal import.

Usage:
    crmres db init
    crmres db import-deals FILE
"""

import sys

import click


@click.group(name="db")
def cli():
    """Database setup commands."""
    pass


@cli.command(name="init")
def init():
    """Create all tables directly.

    Intended for development and SQLite databases; use Alembic
    migrations for managed environments.
    """
    from ..db import init_db

    try:
        init_db()
        click.secho("Database initialized.", fg="green")
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command(name="import-deals")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def import_deals(path: str):
    """Import unresolved deals from a JSON file.

    The file holds an array of objects with any of: name, company,
    contact_name, contact_email, owner_id, created_at.

    Example:

        crmres db import-deals exports/deals.json
    """
    from ..seed import insert_deals, load_deals_file

    try:
        items = load_deals_file(path)
    except ValueError as e:
        click.echo(f"Invalid deals file: {e}", err=True)
        sys.exit(1)

    try:
        ids = insert_deals(items)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Imported {len(ids)} deals.")
