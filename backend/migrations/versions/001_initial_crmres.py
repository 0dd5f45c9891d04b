"""Initial database schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

Creates the entity resolution tables:
- companies: Canonical organizations, unique by domain and by (owner, case-folded name)
- contacts: People keyed by email, with at most one primary per company
- deals: Deals carrying free-text company/contact fields and resolved IDs
- review_queue: Deals needing manual resolution
- orphan_overrides: Email -> company name pins for orphan linking
- resolution_runs: Bulk run history and the bulk-run lease
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # =========================
    # Companies Table
    # =========================
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("name_key", sa.String(500), nullable=False),
        sa.Column("domain", sa.String(255), nullable=True),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("domain", name="uq_companies_domain"),
        sa.UniqueConstraint("owner_id", "name_key", name="uq_companies_owner_name_key"),
    )

    # =========================
    # Contacts Table
    # =========================
    op.create_table(
        "contacts",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column(
            "company_id",
            sa.Uuid,
            sa.ForeignKey("companies.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("email", name="uq_contacts_email"),
    )

    op.create_index(
        "uq_contacts_primary_company",
        "contacts",
        ["company_id"],
        unique=True,
        sqlite_where=sa.text("is_primary = 1"),
        postgresql_where=sa.text("is_primary"),
    )

    # =========================
    # Deals Table
    # =========================
    op.create_table(
        "deals",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(500), nullable=True),
        sa.Column("company", sa.String(500), nullable=True),
        sa.Column("contact_name", sa.String(500), nullable=True),
        sa.Column("contact_email", sa.String(320), nullable=True),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column(
            "company_id",
            sa.Uuid,
            sa.ForeignKey("companies.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "primary_contact_id",
            sa.Uuid,
            sa.ForeignKey("contacts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "resolution_state",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'unresolved'"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_index("idx_deals_created", "deals", ["created_at"])
    op.create_index("idx_deals_owner", "deals", ["owner_id"])

    # =========================
    # Review Queue Table
    # =========================
    op.create_table(
        "review_queue",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "deal_id",
            sa.Uuid,
            sa.ForeignKey("deals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("original_company", sa.String(500), nullable=True),
        sa.Column("original_contact_name", sa.String(500), nullable=True),
        sa.Column("original_contact_email", sa.String(320), nullable=True),
        sa.Column("suggested_company_id", sa.Uuid, nullable=True),
        sa.Column("suggested_contact_id", sa.Uuid, nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        sa.Column("run_id", sa.Uuid, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
    )

    op.create_index("idx_review_queue_status", "review_queue", ["status"])
    op.create_index("idx_review_queue_deal", "review_queue", ["deal_id"])

    # =========================
    # Orphan Overrides Table
    # =========================
    op.create_table(
        "orphan_overrides",
        sa.Column("email", sa.String(320), primary_key=True),
        sa.Column("company_name", sa.String(500), nullable=False),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # =========================
    # Resolution Runs Table
    # =========================
    op.create_table(
        "resolution_runs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("mode", sa.String(20), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'running'"),
        ),
        sa.Column("lease", sa.String(50), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("success_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("lease", name="uq_resolution_runs_lease"),
    )

    op.create_index("idx_resolution_runs_status", "resolution_runs", ["status"])


def downgrade() -> None:
    op.drop_table("resolution_runs")
    op.drop_table("orphan_overrides")
    op.drop_table("review_queue")
    op.drop_table("deals")
    op.drop_index("uq_contacts_primary_company", table_name="contacts")
    op.drop_table("contacts")
    op.drop_table("companies")
