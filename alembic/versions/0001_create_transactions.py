"""create transactions table

Revision ID: 0001_create_transactions
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_create_transactions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.transactions (
          id uuid PRIMARY KEY,
          status text NOT NULL,
          recipient_phone text NOT NULL,
          amount numeric(20, 2) NOT NULL CHECK (amount > 0),
          amount_crypto numeric(28, 12) NOT NULL,
          invoice_id text NOT NULL,
          invoice_string text NOT NULL,
          invoice_source text NOT NULL DEFAULT 'live',
          expires_at timestamptz NOT NULL,
          paid_at timestamptz NULL,
          mobile_money_reference text NULL,
          last_error text NULL,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          CONSTRAINT transactions_status_check CHECK (
            status IN (
              'pending',
              'invoice_generated',
              'paid',
              'sending_mobile_money',
              'completed',
              'failed'
            )
          ),
          CONSTRAINT transactions_invoice_source_check CHECK (
            invoice_source IN ('live', 'simulated')
          ),
          CONSTRAINT transactions_completed_has_reference CHECK (
            status <> 'completed' OR mobile_money_reference IS NOT NULL
          )
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_transactions_status_created_at "
        "ON app.transactions (status, created_at);"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS app.ix_transactions_status_created_at;")
    op.execute("DROP TABLE IF EXISTS app.transactions;")
