"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create professionals table
    # ========================================================================
    op.create_table(
        'professionals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('coin_balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('banned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('banned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ban_reason', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('coin_balance >= 0', name='ck_professional_balance_non_negative'),
    )
    op.create_index('idx_professionals_banned', 'professionals', ['banned'])

    # ========================================================================
    # Create service_requests table
    # ========================================================================
    op.create_table(
        'service_requests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), nullable=True),
        sa.Column('subcategory_id', UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('contracted_professional_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'finalized', 'canceled')",
            name='ck_service_request_status',
        ),
        sa.ForeignKeyConstraint(
            ['contracted_professional_id'], ['professionals.id'],
            name='fk_service_requests_contracted_professional', ondelete='RESTRICT',
        ),
    )
    op.create_index('idx_service_requests_client_id', 'service_requests', ['client_id'])
    op.create_index('idx_service_requests_status', 'service_requests', ['status'])

    # ========================================================================
    # Create contact_unlocks table
    # ========================================================================
    op.create_table(
        'contact_unlocks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('professional_id', UUID(as_uuid=True), nullable=False),
        sa.Column('service_request_id', UUID(as_uuid=True), nullable=False),
        sa.Column('exclusive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('contact_unlocked', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deal_closed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deal_closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('coins_spent', sa.Integer(), nullable=False),
        sa.Column('config_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('coins_spent > 0', name='ck_unlock_coins_positive'),
        sa.UniqueConstraint('professional_id', 'service_request_id', name='uq_unlock_professional_request'),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], name='fk_unlocks_professional', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], name='fk_unlocks_request', ondelete='RESTRICT'),
    )
    op.create_index('idx_contact_unlocks_request', 'contact_unlocks', ['service_request_id'])
    op.create_index('idx_contact_unlocks_professional', 'contact_unlocks', ['professional_id'])

    # ========================================================================
    # Create refund_requests table
    # ========================================================================
    op.create_table(
        'refund_requests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('professional_id', UUID(as_uuid=True), nullable=False),
        sa.Column('service_request_id', UUID(as_uuid=True), nullable=False),
        sa.Column('unlock_id', UUID(as_uuid=True), nullable=False),
        sa.Column('client_id', UUID(as_uuid=True), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('evidence_urls', ARRAY(sa.Text()), nullable=False, server_default='{}'),
        sa.Column('coins_spent', sa.Integer(), nullable=False),
        sa.Column('contact_type', sa.String(20), nullable=False),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('path', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('admin_id', UUID(as_uuid=True), nullable=True),
        sa.Column('admin_response', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('coins_spent > 0', name='ck_refund_coins_positive'),
        sa.CheckConstraint('refund_amount IS NULL OR refund_amount >= 0', name='ck_refund_amount'),
        sa.CheckConstraint("contact_type IN ('normal', 'exclusive')", name='ck_refund_contact_type'),
        sa.CheckConstraint("path IN ('automatic', 'manual')", name='ck_refund_path'),
        sa.CheckConstraint("status IN ('pending', 'approved', 'denied')", name='ck_refund_status'),
        sa.UniqueConstraint('unlock_id', name='uq_refund_unlock'),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], name='fk_refunds_professional', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], name='fk_refunds_request', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['unlock_id'], ['contact_unlocks.id'], name='fk_refunds_unlock', ondelete='RESTRICT'),
    )
    op.create_index('idx_refund_requests_status', 'refund_requests', ['status'])
    op.create_index('idx_refund_requests_professional', 'refund_requests', ['professional_id'])
    op.create_index('idx_refund_requests_created_at', 'refund_requests', ['created_at'])

    # ========================================================================
    # Create coin_transactions table
    # ========================================================================
    op.create_table(
        'coin_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('professional_id', UUID(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.BigInteger(), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('balance_before', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('external_reference', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('quantity <> 0', name='ck_transaction_quantity_non_zero'),
        sa.CheckConstraint('balance_after >= 0', name='ck_transaction_balance_non_negative'),
        sa.CheckConstraint('balance_after = balance_before + quantity', name='ck_transaction_balance_consistency'),
        sa.CheckConstraint(
            "transaction_type IN ('purchase', 'admin_credit', 'usage_debit', 'refund_credit')",
            name='ck_transaction_type',
        ),
        sa.UniqueConstraint('external_reference', name='uq_transaction_external_reference'),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], name='fk_transactions_professional', ondelete='RESTRICT'),
    )
    op.create_index('idx_coin_transactions_professional', 'coin_transactions', ['professional_id', 'created_at'])
    op.create_index('idx_coin_transactions_type', 'coin_transactions', ['transaction_type'])

    # ========================================================================
    # Create marketplace_config table (singleton)
    # ========================================================================
    op.create_table(
        'marketplace_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unlock_cost_normal', sa.Integer(), nullable=False),
        sa.Column('unlock_cost_exclusive', sa.Integer(), nullable=False),
        sa.Column('max_professionals_per_request', sa.Integer(), nullable=False),
        sa.Column('refund_percentage', sa.Integer(), nullable=False),
        sa.Column('refund_window_days', sa.Integer(), nullable=False),
        sa.Column('updated_by', UUID(as_uuid=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('id = 1', name='ck_marketplace_config_singleton'),
        sa.CheckConstraint('unlock_cost_normal BETWEEN 1 AND 1000', name='ck_config_cost_normal_range'),
        sa.CheckConstraint('unlock_cost_exclusive BETWEEN 1 AND 1000', name='ck_config_cost_exclusive_range'),
        sa.CheckConstraint('max_professionals_per_request BETWEEN 1 AND 20', name='ck_config_max_pros_range'),
        sa.CheckConstraint('refund_percentage BETWEEN 0 AND 100', name='ck_config_refund_pct_range'),
        sa.CheckConstraint('refund_window_days BETWEEN 1 AND 30', name='ck_config_window_range'),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('marketplace_config')
    op.drop_table('coin_transactions')
    op.drop_table('refund_requests')
    op.drop_table('contact_unlocks')
    op.drop_table('service_requests')
    op.drop_table('professionals')
