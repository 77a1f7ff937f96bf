"""Initial schema for the basket filter

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Product catalog (SKU -> category and cached AI verdict)
    op.create_table(
        'catalog_items',
        sa.Column('sku', sa.Text, primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('original_category', sa.Text),
        sa.Column('normalized_category', sa.String(50), nullable=False),
        sa.Column('brand', sa.Text),
        sa.Column('unit_price', sa.Numeric(12, 2)),
        sa.Column('contains_alcohol', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('ai_classification', postgresql.JSONB, comment='Last AI verdict for this SKU'),
        sa.Column('tags', postgresql.ARRAY(sa.Text), server_default='{}'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_catalog_items_category', 'catalog_items', ['normalized_category'])
    op.create_index('idx_catalog_items_name', 'catalog_items', ['name'])

    # Per-merchant eligibility rules (whole MerchantRules document as JSONB)
    op.create_table(
        'merchant_rules',
        sa.Column('merchant_id', sa.Text, primary_key=True),
        sa.Column('merchant_name', sa.Text),
        sa.Column('country_code', sa.String(2), nullable=False),
        sa.Column('rules', postgresql.JSONB, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_merchant_rules_country', 'merchant_rules', ['country_code'])

    # Country defaults used when a merchant has no record
    op.create_table(
        'country_rules',
        sa.Column('country_code', sa.String(2), primary_key=True),
        sa.Column('rules', postgresql.JSONB, nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    # Audit trail, one row per filtered basket
    op.create_table(
        'basket_transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('basket_id', sa.Text, nullable=False),
        sa.Column('transaction_id', sa.Text, nullable=False),
        sa.Column('merchant_id', sa.Text, nullable=False),
        sa.Column('country_code', sa.String(2), nullable=False),
        sa.Column('currency_code', sa.String(3), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('eligible_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('ineligible_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('is_fully_eligible', sa.Boolean, nullable=False),
        sa.Column('ineligibility_reason', sa.Text),
        sa.Column('item_count', sa.Integer, nullable=False),
        sa.Column('items', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_unique_constraint('uq_basket_transactions_txn', 'basket_transactions', ['transaction_id'])
    op.create_index('idx_basket_transactions_merchant', 'basket_transactions', ['merchant_id', 'processed_at'])


def downgrade() -> None:
    op.drop_table('basket_transactions')
    op.drop_table('country_rules')
    op.drop_table('merchant_rules')
    op.drop_table('catalog_items')
