"""CLI entry points for CRMRES.

Provides command-line tools for:
- Bulk and single-record entity resolution
- Orphan contact linking
- Review queue triage
- Database setup and deal import
"""

import click

from .. import __version__
from .db import cli as db_cli
from .resolve import cli as resolve_cli
from .review import cli as review_cli


@click.group()
@click.version_option(version=__version__, prog_name="crmres")
def main():
    """CRMRES - CRM entity resolution and deduplication.

    Command-line tools for resolving deal companies and contacts,
    linking orphan contacts, and triaging the review queue.
    """
    pass


main.add_command(db_cli, name="db")
main.add_command(resolve_cli, name="resolve")
main.add_command(review_cli, name="review")


if __name__ == "__main__":
    main()
