"""payments core tables

Revision ID: 0001_payments_core
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_payments_core"
down_revision = None
branch_labels = None
depends_on = None

PROCESSOR_TYPES = ("STRIPE", "PAYSAFE", "CASH", "OTHER")


def upgrade() -> None:
    op.create_table(
        "payment_processors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.Enum(*PROCESSOR_TYPES, name="processortype"), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("first_name", sa.String(length=120), nullable=True),
        sa.Column("last_name", sa.String(length=120), nullable=True),
        sa.Column("ref_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("payment_processor_id", sa.Integer(), sa.ForeignKey("payment_processors.id"), nullable=True),
        sa.Column("stripe_connect_account_id", sa.String(length=64), nullable=True),
        sa.Column("webhook_secret", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("tenant_id", name="uq_businesses_tenant_id"),
    )
    op.create_index("ix_businesses_tenant_id", "businesses", ["tenant_id"])
    op.create_index("ix_businesses_owner_user_id", "businesses", ["owner_user_id"])

    op.create_table(
        "connect_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("remote_account_id", sa.String(length=64), nullable=True),
        sa.Column("account_kind", sa.String(length=20), nullable=False, server_default="express"),
        sa.Column("country_code", sa.String(length=2), nullable=False, server_default="US"),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("charges_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("details_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payouts_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("business_id", name="uq_connect_accounts_business_id"),
    )
    op.create_index(
        "ix_connect_accounts_remote_account_id", "connect_accounts", ["remote_account_id"], unique=True
    )

    op.create_table(
        "customer_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("remote_customer_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("remote_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", name="uq_customer_records_user_id"),
    )
    op.create_index("ix_customer_records_remote_customer_id", "customer_records", ["remote_customer_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", sa.String(length=40), nullable=False),
        sa.Column("external_id", sa.String(length=120), nullable=False),
        sa.Column("event_type", sa.String(length=120), nullable=True),
        sa.Column("signature", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("provider", "external_id", name="uq_webhook_provider_external"),
    )


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_index("ix_customer_records_remote_customer_id", table_name="customer_records")
    op.drop_table("customer_records")
    op.drop_index("ix_connect_accounts_remote_account_id", table_name="connect_accounts")
    op.drop_table("connect_accounts")
    op.drop_index("ix_businesses_owner_user_id", table_name="businesses")
    op.drop_index("ix_businesses_tenant_id", table_name="businesses")
    op.drop_table("businesses")
    op.drop_table("users")
    op.drop_table("payment_processors")
    sa.Enum(name="processortype").drop(op.get_bind(), checkfirst=True)
