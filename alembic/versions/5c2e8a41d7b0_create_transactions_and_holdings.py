"""create transactions and holdings tables

Revision ID: 5c2e8a41d7b0
Revises:
Create Date: 2026-10-17 09:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e8a41d7b0"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("instrument_code", sa.String(), nullable=False),
        sa.Column("instrument_name", sa.String(), nullable=False),
        sa.Column("transaction_type", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(28, 10), nullable=False),
        sa.Column("total_amount", sa.Numeric(28, 10), nullable=False),
        sa.Column("fee", sa.Numeric(28, 10), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transactions_transaction_id"), "transactions", ["transaction_id"], unique=True)
    op.create_index(op.f("ix_transactions_account_id"), "transactions", ["account_id"], unique=False)
    op.create_index(
        "ix_transactions_account_instrument_effective",
        "transactions",
        ["account_id", "instrument_code", "effective_at"],
        unique=False,
    )

    op.create_table(
        "holdings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("instrument_code", sa.String(), nullable=False),
        sa.Column("instrument_name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("average_cost", sa.Numeric(28, 10), nullable=False),
        sa.Column("total_cost", sa.Numeric(28, 10), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("last_effective_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "instrument_code", name="_holding_account_instrument_uc"),
    )
    op.create_index(op.f("ix_holdings_account_id"), "holdings", ["account_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_holdings_account_id"), table_name="holdings")
    op.drop_table("holdings")
    op.drop_index("ix_transactions_account_instrument_effective", table_name="transactions")
    op.drop_index(op.f("ix_transactions_account_id"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_transaction_id"), table_name="transactions")
    op.drop_table("transactions")
