"""paysafe customer vault

Revision ID: 0002_paysafe_customers
Revises: 0001_payments_core
Create Date: 2026-10-19
"""
from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0002_paysafe_customers"
down_revision = "0001_payments_core"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "paysafe_customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("remote_customer_id", sa.String(length=64), nullable=False),
        sa.Column("merchant_customer_id", sa.String(length=160), nullable=False),
        sa.Column("default_payment_handle_token", sa.String(length=120), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", name="uq_paysafe_customers_user_id"),
    )
    op.create_index("ix_paysafe_customers_remote_customer_id", "paysafe_customers", ["remote_customer_id"])


def downgrade() -> None:
    op.drop_index("ix_paysafe_customers_remote_customer_id", table_name="paysafe_customers")
    op.drop_table("paysafe_customers")
