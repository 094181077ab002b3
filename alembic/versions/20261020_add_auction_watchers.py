"""add_auction_watchers

Revision ID: 002_auction_watchers
Revises: 001_auctions_and_bids
Create Date: 2026-10-20

Adds per-auction watcher subscriptions with outbid, ending-soon and result
alert preferences.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_auction_watchers'
down_revision: Union[str, None] = '001_auctions_and_bids'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'auction_watchers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'auction_id',
            sa.Uuid(),
            sa.ForeignKey('auctions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('notify_outbid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_ending', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_result', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('auction_id', 'email', name='uq_auction_watchers_auction_email'),
    )
    op.create_index('idx_auction_watchers_user', 'auction_watchers', ['user_id'])


def downgrade() -> None:
    op.drop_index('idx_auction_watchers_user', table_name='auction_watchers')
    op.drop_table('auction_watchers')
