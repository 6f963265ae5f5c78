"""create_indexer_schema

Revision ID: 2026_10_19_120000
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '2026_10_19_120000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ZERO_ADDRESS_DEFAULT = sa.text("'0x0000000000000000000000000000000000000000'")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'ens_names',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('token_id', sa.String(length=80), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('owner_address', sa.String(length=42), nullable=True),
        sa.Column('registrant', sa.String(length=42), nullable=True),
        sa.Column('owner_block_number', sa.BigInteger(), nullable=True),
        sa.Column('owner_log_index', sa.Integer(), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registration_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_transfer_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('clubs', postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column('has_numbers', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('has_emoji', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_ens_names')),
        sa.UniqueConstraint('token_id', name=op.f('uq_ens_names_token_id')),
    )
    op.create_index(
        'ens_names_real_name_unique',
        'ens_names',
        ['name'],
        unique=True,
        postgresql_where=sa.text("name NOT LIKE 'token-%' AND name ~ '^[a-z0-9-]+\\.eth$'"),
    )
    op.create_index('ix_ens_names_owner_address', 'ens_names', ['owner_address'])
    op.create_index('ix_ens_names_expiry_date', 'ens_names', ['expiry_date'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('transaction_hash', sa.String(length=100), nullable=False),
        sa.Column('ens_name_id', sa.BigInteger(), nullable=False),
        sa.Column('transaction_type', sa.String(length=20), nullable=False),
        sa.Column('from_address', sa.String(length=42), nullable=True),
        sa.Column('to_address', sa.String(length=42), nullable=True),
        sa.Column('price_wei', sa.Numeric(precision=78, scale=0), nullable=True),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "transaction_type IN ('sale', 'transfer', 'registration', 'renewal')",
            name=op.f('ck_transactions_transaction_type'),
        ),
        sa.ForeignKeyConstraint(
            ['ens_name_id'], ['ens_names.id'],
            name=op.f('fk_transactions_ens_name_id_ens_names'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_transactions')),
        sa.UniqueConstraint('transaction_hash', name=op.f('uq_transactions_transaction_hash')),
    )
    op.create_index('ix_transactions_ens_name_id', 'transactions', ['ens_name_id'])
    op.create_index('ix_transactions_block_number', 'transactions', ['block_number'])

    op.create_table(
        'listings',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('ens_name_id', sa.BigInteger(), nullable=False),
        sa.Column('seller_address', sa.String(length=42), nullable=False),
        sa.Column('price_wei', sa.Numeric(precision=78, scale=0), nullable=False),
        sa.Column('currency_address', sa.String(length=42), server_default=ZERO_ADDRESS_DEFAULT, nullable=False),
        sa.Column('order_hash', sa.String(length=100), nullable=True),
        sa.Column('order_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.String(length=20), server_default=sa.text("'active'"), nullable=False),
        sa.Column('source', sa.String(length=20), server_default=sa.text("'grails'"), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('active', 'sold', 'cancelled', 'expired')",
            name=op.f('ck_listings_status'),
        ),
        sa.ForeignKeyConstraint(
            ['ens_name_id'], ['ens_names.id'],
            name=op.f('fk_listings_ens_name_id_ens_names'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_listings')),
        sa.UniqueConstraint('order_hash', 'source', name='listings_order_hash_source_unique'),
    )
    op.create_index('ix_listings_name_seller_status', 'listings', ['ens_name_id', 'seller_address', 'status'])

    op.create_table(
        'offers',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('ens_name_id', sa.BigInteger(), nullable=False),
        sa.Column('buyer_address', sa.String(length=42), nullable=False),
        sa.Column('offer_amount_wei', sa.Numeric(precision=78, scale=0), nullable=False),
        sa.Column('currency_address', sa.String(length=42), server_default=ZERO_ADDRESS_DEFAULT, nullable=False),
        sa.Column('order_hash', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('source', sa.String(length=20), server_default=sa.text("'grails'"), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'expired')",
            name=op.f('ck_offers_status'),
        ),
        sa.ForeignKeyConstraint(
            ['ens_name_id'], ['ens_names.id'],
            name=op.f('fk_offers_ens_name_id_ens_names'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_offers')),
        sa.UniqueConstraint('order_hash', 'source', name='offers_order_hash_source_unique'),
    )
    op.create_index('ix_offers_ens_name_id', 'offers', ['ens_name_id'])

    op.create_table(
        'sales',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('ens_name_id', sa.BigInteger(), nullable=False),
        sa.Column('listing_id', sa.BigInteger(), nullable=True),
        sa.Column('seller_address', sa.String(length=42), nullable=True),
        sa.Column('buyer_address', sa.String(length=42), nullable=True),
        sa.Column('sale_price_wei', sa.Numeric(precision=78, scale=0), nullable=False),
        sa.Column('currency_address', sa.String(length=42), nullable=False),
        sa.Column('platform_fee_wei', sa.Numeric(precision=78, scale=0), nullable=True),
        sa.Column('creator_fee_wei', sa.Numeric(precision=78, scale=0), nullable=True),
        sa.Column('order_hash', sa.String(length=100), nullable=True),
        sa.Column('transaction_hash', sa.String(length=100), nullable=True),
        sa.Column('block_number', sa.BigInteger(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('sale_date', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("source IN ('blockchain', 'opensea', 'grails')", name=op.f('ck_sales_source')),
        sa.ForeignKeyConstraint(
            ['ens_name_id'], ['ens_names.id'],
            name=op.f('fk_sales_ens_name_id_ens_names'),
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['listing_id'], ['listings.id'],
            name=op.f('fk_sales_listing_id_listings'),
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sales')),
        sa.UniqueConstraint('transaction_hash', 'ens_name_id', name='sales_transaction_name_unique'),
    )
    op.create_index('ix_sales_order_hash', 'sales', ['order_hash'])
    op.create_index('ix_sales_ens_name_id_sale_date', 'sales', ['ens_name_id', 'sale_date'])

    op.create_table(
        'blockchain_events',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('transaction_hash', sa.String(length=100), nullable=False),
        sa.Column('log_index', sa.Integer(), nullable=False),
        sa.Column('contract_address', sa.String(length=42), nullable=False),
        sa.Column('event_name', sa.String(length=100), nullable=False),
        sa.Column('event_data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('processed', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_blockchain_events')),
        sa.UniqueConstraint('transaction_hash', 'log_index', name='blockchain_events_tx_log_unique'),
    )
    op.create_index('ix_blockchain_events_contract_block', 'blockchain_events', ['contract_address', 'block_number'])

    op.create_table(
        'activity_history',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('ens_name_id', sa.BigInteger(), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('actor_address', sa.String(length=42), nullable=False),
        sa.Column('counterparty_address', sa.String(length=42), nullable=True),
        sa.Column('platform', sa.String(length=50), nullable=False),
        sa.Column('chain_id', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('price_wei', sa.Numeric(precision=78, scale=0), nullable=True),
        sa.Column('currency_address', sa.String(length=42), nullable=True),
        sa.Column('transaction_hash', sa.String(length=100), nullable=True),
        sa.Column('block_number', sa.BigInteger(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(
            ['ens_name_id'], ['ens_names.id'],
            name=op.f('fk_activity_history_ens_name_id_ens_names'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_activity_history')),
    )
    op.create_index(
        'activity_history_tx_event_unique',
        'activity_history',
        ['ens_name_id', 'event_type', 'transaction_hash'],
        unique=True,
        postgresql_where=sa.text('transaction_hash IS NOT NULL'),
    )
    op.create_index('ix_activity_history_ens_name_created', 'activity_history', ['ens_name_id', 'created_at'])
    op.create_index('ix_activity_history_actor', 'activity_history', ['actor_address'])

    op.create_table(
        'indexer_state',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('contract_address', sa.String(length=42), nullable=False),
        sa.Column('last_processed_block', sa.BigInteger(), nullable=False),
        sa.Column('last_processed_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_indexer_state')),
        sa.UniqueConstraint('contract_address', name=op.f('uq_indexer_state_contract_address')),
    )

    op.create_table(
        'job_queue',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('state', sa.String(length=20), server_default=sa.text("'created'"), nullable=False),
        sa.Column('retry_limit', sa.Integer(), server_default=sa.text('3'), nullable=False),
        sa.Column('retry_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('singleton_key', sa.String(length=200), nullable=True),
        sa.Column('start_after', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_job_queue')),
    )
    op.create_index(
        'job_queue_pending_singleton_unique',
        'job_queue',
        ['name', 'singleton_key'],
        unique=True,
        postgresql_where=sa.text("state = 'created' AND singleton_key IS NOT NULL"),
    )
    op.create_index('ix_job_queue_name_state_start_after', 'job_queue', ['name', 'state', 'start_after'])


def downgrade() -> None:
    op.drop_table('job_queue')
    op.drop_table('indexer_state')
    op.drop_table('activity_history')
    op.drop_table('blockchain_events')
    op.drop_table('sales')
    op.drop_table('offers')
    op.drop_table('listings')
    op.drop_table('transactions')
    op.drop_table('ens_names')
