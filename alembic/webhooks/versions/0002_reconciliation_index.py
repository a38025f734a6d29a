"""add status/updated_at index for reconciliation listing

Revision ID: 0002_reconciliation_index
Revises: 0001_webhooks
Create Date: 2026-10-18
"""

from alembic import op


revision = "0002_reconciliation_index"
down_revision = "0001_webhooks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "ix_payment_transactions_status_updated_at",
        "payment_transactions",
        ["status", "updated_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_payment_transactions_status_updated_at", table_name="payment_transactions")
