"""initial_schema

Accounts, transactions and the transaction audit trail.

Revision ID: 0001
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'accounts',
        sa.Column('account_number', sa.String(length=10), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=8), nullable=False, server_default='Active'),
        sa.Column('role', sa.String(length=5), nullable=False, server_default='user'),
        sa.Column('pin_hash', sa.String(length=255), nullable=False),
        sa.Column('failed_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('account_number'),
        sa.CheckConstraint('balance_cents >= 0', name='ck_accounts_non_negative_balance'),
        sa.CheckConstraint('failed_attempts >= 0', name='ck_accounts_failed_attempts'),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=9), nullable=False),
        sa.Column('account_number', sa.String(length=10), nullable=False),
        sa.Column('target_account', sa.String(length=10), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('fee_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('source_balance_before_cents', sa.Integer(), nullable=True),
        sa.Column('source_balance_after_cents', sa.Integer(), nullable=True),
        sa.Column('target_balance_before_cents', sa.Integer(), nullable=True),
        sa.Column('target_balance_after_cents', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['account_number'], ['accounts.account_number']),
        sa.ForeignKeyConstraint(['target_account'], ['accounts.account_number']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_transactions_positive_amount'),
        sa.CheckConstraint('fee_cents >= 0', name='ck_transactions_non_negative_fee'),
        sa.CheckConstraint(
            'target_account IS NULL OR target_account <> account_number',
            name='ck_transactions_distinct_accounts',
        ),
    )
    op.create_index(op.f('ix_transactions_type'), 'transactions', ['type'], unique=False)
    op.create_index(op.f('ix_transactions_status'), 'transactions', ['status'], unique=False)
    op.create_index(op.f('ix_transactions_account_number'), 'transactions', ['account_number'], unique=False)
    op.create_index(op.f('ix_transactions_target_account'), 'transactions', ['target_account'], unique=False)
    op.create_index(op.f('ix_transactions_created_at'), 'transactions', ['created_at'], unique=False)

    op.create_table(
        'transaction_audit',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=8), nullable=False),
        sa.Column('performed_by', sa.String(length=10), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        op.f('ix_transaction_audit_transaction_id'), 'transaction_audit', ['transaction_id'], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f('ix_transaction_audit_transaction_id'), table_name='transaction_audit')
    op.drop_table('transaction_audit')

    op.drop_index(op.f('ix_transactions_created_at'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_target_account'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_account_number'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_status'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_type'), table_name='transactions')
    op.drop_table('transactions')

    op.drop_table('accounts')
