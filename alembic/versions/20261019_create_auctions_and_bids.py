"""create_auctions_and_bids

Revision ID: 001_auctions_and_bids
Revises:
Create Date: 2026-10-19

Creates the auctions table and the append-only bids ledger. Status columns
are plain strings guarded by CHECK constraints so new statuses only need a
constraint change, not an enum type migration.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_auctions_and_bids'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'auctions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('gemstone_type', sa.String(100), nullable=True),
        sa.Column('carat_weight', sa.Numeric(6, 3), nullable=True),
        sa.Column('cut', sa.String(100), nullable=True),
        sa.Column('clarity', sa.String(100), nullable=True),
        sa.Column('color', sa.String(100), nullable=True),
        sa.Column('origin', sa.String(100), nullable=True),
        sa.Column('certification', sa.String(255), nullable=True),
        sa.Column('starting_bid', sa.Numeric(10, 2), nullable=False),
        sa.Column('current_bid', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('reserve_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('buy_now_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('bid_increment', sa.Numeric(10, 2), nullable=False, server_default='1.00'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='CAD'),
        sa.Column('bid_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('highest_bidder_id', sa.Uuid(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('extended_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('auto_extend', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('extend_minutes', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('extend_threshold_minutes', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('winner_id', sa.Uuid(), nullable=True),
        sa.Column('winning_bid', sa.Numeric(10, 2), nullable=True),
        sa.Column('won_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('starting_bid >= 0', name='chk_auction_starting_bid'),
        sa.CheckConstraint('current_bid >= 0', name='chk_auction_current_bid'),
        sa.CheckConstraint(
            'reserve_price IS NULL OR reserve_price >= starting_bid',
            name='chk_auction_reserve_price',
        ),
        sa.CheckConstraint(
            'buy_now_price IS NULL OR buy_now_price > starting_bid',
            name='chk_auction_buy_now_price',
        ),
        sa.CheckConstraint('bid_increment > 0', name='chk_auction_bid_increment'),
        sa.CheckConstraint('end_time > start_time', name='chk_auction_time'),
        sa.CheckConstraint(
            "status IN ('pending', 'scheduled', 'active', 'ended', 'sold', 'cancelled', 'no_sale')",
            name='chk_auction_status',
        ),
    )
    op.create_index('idx_auctions_status', 'auctions', ['status'])
    op.create_index('idx_auctions_end_time', 'auctions', ['end_time'])
    op.create_index('idx_auctions_current_bid', 'auctions', ['current_bid'])

    op.create_table(
        'bids',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'auction_id',
            sa.Uuid(),
            sa.ForeignKey('auctions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('bidder_id', sa.Uuid(), nullable=False),
        sa.Column('bidder_email', sa.String(255), nullable=True),
        sa.Column('bidder_name', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('max_bid', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_auto_bid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('is_winning', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('amount > 0', name='chk_bid_amount_positive'),
        sa.CheckConstraint(
            "status IN ('active', 'outbid', 'winning', 'won', 'cancelled', 'retracted')",
            name='chk_bid_status',
        ),
    )
    op.create_index('idx_bids_auction_amount', 'bids', ['auction_id', 'amount'])
    op.create_index('idx_bids_bidder', 'bids', ['bidder_id'])

    # At most one winning bid per auction
    op.create_index(
        'uq_bids_auction_winning',
        'bids',
        ['auction_id'],
        unique=True,
        postgresql_where=sa.text('is_winning'),
    )


def downgrade() -> None:
    op.drop_index('uq_bids_auction_winning', table_name='bids')
    op.drop_index('idx_bids_bidder', table_name='bids')
    op.drop_index('idx_bids_auction_amount', table_name='bids')
    op.drop_table('bids')
    op.drop_index('idx_auctions_current_bid', table_name='auctions')
    op.drop_index('idx_auctions_end_time', table_name='auctions')
    op.drop_index('idx_auctions_status', table_name='auctions')
    op.drop_table('auctions')
