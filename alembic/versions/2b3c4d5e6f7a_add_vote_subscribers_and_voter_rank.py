"""add_vote_subscribers_and_voter_rank

Revision ID: 2b3c4d5e6f7a
Revises: 1a2b3c4d5e6f
Create Date: 2026-10-18

Adds:
- vote_subscribers: who to notify when a barcode's results are ready
- product_voters.voter_rank: the voter's position on a barcode
- fingerprint index for looking up a device's investigations
"""
from alembic import op
import sqlalchemy as sa

revision = '2b3c4d5e6f7a'
down_revision = '1a2b3c4d5e6f'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('product_voters', sa.Column('voter_rank', sa.Integer(), nullable=True))
    op.create_index('idx_product_voters_fingerprint', 'product_voters', ['fingerprint'])

    op.create_table(
        'vote_subscribers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_vote_id', sa.Integer(), nullable=False),
        sa.Column('subscriber_id', sa.String(255), nullable=False),
        sa.Column('subscribed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_vote_id'], ['product_votes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_vote_id', 'subscriber_id', name='uq_vote_subscriber'),
    )


def downgrade() -> None:
    op.drop_table('vote_subscribers')
    op.drop_index('idx_product_voters_fingerprint', table_name='product_voters')
    op.drop_column('product_voters', 'voter_rank')
