"""Baseline schema for organizations, knowledge base, proposals and proposal jobs.

Revision ID: 0001_proposals_baseline
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_proposals_baseline"
down_revision = None
branch_labels = None
depends_on = None

_UTC_NOW_ISO = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def _id_column() -> sa.Column:
  return sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False)


def _org_column() -> sa.Column:
  return sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)


def _timestamp(name: str, *, nullable: bool = True) -> sa.Column:
  return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=nullable)


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "organizations",
    _id_column(),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("plan_tier", sa.String(), nullable=False),
    sa.Column("settings", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    _timestamp("created_at"),
    _timestamp("updated_at"),
    sa.PrimaryKeyConstraint("id"),
    sa.CheckConstraint("plan_tier IN ('free', 'pro', 'team', 'enterprise')", name="ck_organizations_plan_tier"),
  )
  op.create_table(
    "users",
    _id_column(),
    sa.Column("firebase_uid", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("full_name", sa.String(), nullable=True),
    sa.Column("org_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=True),
    sa.Column("role", sa.String(), nullable=False),
    _timestamp("created_at"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_users_firebase_uid"), "users", ["firebase_uid"], unique=True)
  op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
  op.create_index(op.f("ix_users_org_id"), "users", ["org_id"], unique=False)

  op.create_table(
    "opportunities",
    _id_column(),
    _org_column(),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("amount", sa.Numeric(14, 2), nullable=True),
    sa.Column("close_date", sa.Date(), nullable=True),
    sa.Column("stage", sa.String(), nullable=False),
    sa.Column("deal_summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    _timestamp("created_at"),
    _timestamp("updated_at"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_opportunities_org_id"), "opportunities", ["org_id"], unique=False)

  op.create_table(
    "products",
    _id_column(),
    _org_column(),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("category", sa.String(), nullable=True),
    sa.Column("is_active", sa.Boolean(), nullable=False),
    _timestamp("created_at"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_products_org_id"), "products", ["org_id"], unique=False)

  op.create_table(
    "battlecards",
    _id_column(),
    _org_column(),
    sa.Column("competitor_name", sa.String(), nullable=False),
    sa.Column("structured_content", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("is_active", sa.Boolean(), nullable=False),
    _timestamp("created_at"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_battlecards_org_id"), "battlecards", ["org_id"], unique=False)

  op.create_table(
    "company_profiles",
    _id_column(),
    _org_column(),
    sa.Column("summary", sa.Text(), nullable=True),
    sa.Column("value_proposition", sa.Text(), nullable=True),
    sa.Column("target_customers", sa.Text(), nullable=True),
    sa.Column("key_differentiators", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    _timestamp("updated_at"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("org_id", name="uq_company_profiles_org_id"),
  )
  op.create_table(
    "brand_settings",
    _id_column(),
    _org_column(),
    sa.Column("brand_guidelines", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    _timestamp("updated_at"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("org_id", name="uq_brand_settings_org_id"),
  )
  op.create_table(
    "deal_context_items",
    _id_column(),
    sa.Column("opportunity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("opportunities.id", ondelete="CASCADE"), nullable=False),
    sa.Column("source_type", sa.String(), nullable=False),
    sa.Column("raw_content", sa.Text(), nullable=False),
    sa.Column("source_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    _timestamp("created_at"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_deal_context_items_opportunity_id"), "deal_context_items", ["opportunity_id"], unique=False)
  op.create_index(op.f("ix_deal_context_items_created_at"), "deal_context_items", ["created_at"], unique=False)

  op.create_table(
    "proposals",
    _id_column(),
    _org_column(),
    sa.Column("opportunity_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("opportunities.id", ondelete="RESTRICT"), nullable=False),
    sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("prompt", sa.Text(), nullable=False),
    sa.Column("slides", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("error_details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("generation_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    _timestamp("created_at"),
    _timestamp("updated_at"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("opportunity_id", "version", name="ux_proposals_opportunity_version"),
  )
  op.create_index(op.f("ix_proposals_org_id"), "proposals", ["org_id"], unique=False)
  op.create_index(op.f("ix_proposals_opportunity_id"), "proposals", ["opportunity_id"], unique=False)
  op.create_index(op.f("ix_proposals_status"), "proposals", ["status"], unique=False)

  op.create_table(
    "proposal_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("proposal_id", sa.String(), nullable=False),
    sa.Column("org_id", sa.String(), nullable=False),
    sa.Column("opportunity_id", sa.String(), nullable=False),
    sa.Column("request_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("stage", sa.String(), nullable=False),
    sa.Column("slide_index", sa.Integer(), nullable=True),
    sa.Column("total_slides", sa.Integer(), nullable=True),
    sa.Column("message", sa.Text(), nullable=True),
    sa.Column("error_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_proposal_jobs_proposal_id"), "proposal_jobs", ["proposal_id"], unique=False)
  op.create_index(op.f("ix_proposal_jobs_org_id"), "proposal_jobs", ["org_id"], unique=False)
  op.create_index(op.f("ix_proposal_jobs_status"), "proposal_jobs", ["status"], unique=False)
  # At most one queued or running job per proposal.
  op.create_index("ux_proposal_jobs_active_proposal", "proposal_jobs", ["proposal_id"], unique=True, postgresql_where=sa.text("status IN ('queued', 'running')"))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ux_proposal_jobs_active_proposal", table_name="proposal_jobs")
  op.drop_table("proposal_jobs")
  op.drop_table("proposals")
  op.drop_table("deal_context_items")
  op.drop_table("brand_settings")
  op.drop_table("company_profiles")
  op.drop_table("battlecards")
  op.drop_table("products")
  op.drop_table("opportunities")
  op.drop_table("users")
  op.drop_table("organizations")
