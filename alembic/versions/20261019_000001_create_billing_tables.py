"""Create occupancies, invoices and payments tables

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19

Creates the billing tables. Every row carries company_id (tenant isolation)
and is_active (soft delete). invoices.version backs the optimistic lock.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _scoped_columns():
    return [
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('company_id', sa.String(36), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create the billing tables."""
    op.create_table(
        'occupancies',
        *_scoped_columns(),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('apartment_id', sa.String(36), nullable=True),
        sa.Column('lease_start_date', sa.Date(), nullable=False),
        sa.Column('lease_end_date', sa.Date(), nullable=False),
        sa.Column('monthly_rent', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('security_deposit', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'active', 'ended', 'cancelled', name='occupancy_status', create_constraint=True),
            nullable=False,
            server_default='pending'
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_occupancies_company_id', 'occupancies', ['company_id'])
    op.create_index('ix_occupancies_tenant_id', 'occupancies', ['tenant_id'])
    op.create_index('ix_occupancies_company_status', 'occupancies', ['company_id', 'status'])

    op.create_table(
        'invoices',
        *_scoped_columns(),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('occupancy_id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column(
            'status',
            sa.Enum('draft', 'sent', 'paid', 'overdue', 'cancelled', name='invoice_status', create_constraint=True),
            nullable=False,
            server_default='draft'
        ),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['occupancy_id'],
            ['occupancies.id'],
            name='fk_invoices_occupancy_id',
            ondelete='NO ACTION'
        ),
        sa.UniqueConstraint('company_id', 'invoice_number', name='uq_invoices_company_number'),
    )
    op.create_index('ix_invoices_company_id', 'invoices', ['company_id'])
    op.create_index('ix_invoices_occupancy_id', 'invoices', ['occupancy_id'])
    op.create_index('ix_invoices_company_status', 'invoices', ['company_id', 'status'])
    op.create_index('ix_invoices_company_due_date', 'invoices', ['company_id', 'due_date'])
    op.create_index('ix_invoices_company_tenant', 'invoices', ['company_id', 'tenant_id'])

    op.create_table(
        'payments',
        *_scoped_columns(),
        sa.Column('invoice_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column(
            'method',
            sa.Enum('CASH', 'BANK', 'MOBILE', 'CARD', 'OTHER', name='payment_method', create_constraint=True),
            nullable=False
        ),
        sa.Column('reference', sa.String(255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.Column('voided_with_invoice', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['invoice_id'],
            ['invoices.id'],
            name='fk_payments_invoice_id',
            ondelete='NO ACTION'
        ),
    )
    op.create_index('ix_payments_company_id', 'payments', ['company_id'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_company_invoice', 'payments', ['company_id', 'invoice_id'])
    op.create_index('ix_payments_company_paid_at', 'payments', ['company_id', 'paid_at'])
    op.create_index('ix_payments_company_idempotency_key', 'payments', ['company_id', 'idempotency_key'])


def downgrade() -> None:
    """Drop the billing tables."""
    op.drop_table('payments')
    op.drop_table('invoices')
    op.drop_table('occupancies')
