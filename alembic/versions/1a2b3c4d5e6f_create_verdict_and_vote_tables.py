"""create_verdict_and_vote_tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-18

Adds:
- ingredients / ingredient_aliases with verdicts and cascade settings
- products / product_ingredients with resolved verdict and override audit
- product_votes, product_voters, scan_events, vote_status_changes for
  the crowd-funded testing queue
"""
from alembic import op
import sqlalchemy as sa

revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('normalized_name', sa.String(255), nullable=False),
        sa.Column('verdict', sa.String(20), nullable=False, server_default='unknown'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('auto_flag_products', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('flagged_product_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index(op.f('ix_ingredients_normalized_name'), 'ingredients', ['normalized_name'], unique=True)
    op.create_index('idx_ingredients_verdict', 'ingredients', ['verdict'])

    op.create_table(
        'ingredient_aliases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ingredient_id', sa.Integer(), nullable=False),
        sa.Column('alias', sa.String(255), nullable=False),
        sa.Column('normalized_alias', sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(['ingredient_id'], ['ingredients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('normalized_alias'),
    )
    op.create_index('idx_ingredient_aliases_ingredient_id', 'ingredient_aliases', ['ingredient_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('brand', sa.String(255), nullable=False),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('verdict', sa.String(20), nullable=False, server_default='unknown'),
        sa.Column('rule_applied', sa.String(255), nullable=True),
        sa.Column('rule_ingredient_id', sa.Integer(), nullable=True),
        sa.Column('verdict_updated_at', sa.DateTime(), nullable=True),
        sa.Column('verdict_override', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('verdict_override_reason', sa.Text(), nullable=True),
        sa.Column('overridden_by', sa.String(255), nullable=True),
        sa.Column('overridden_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['rule_ingredient_id'], ['ingredients.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
    )
    op.create_index('idx_products_verdict', 'products', ['verdict'])

    op.create_table(
        'product_ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('ingredient_id', sa.Integer(), nullable=True),
        sa.Column('ingredient_name', sa.String(255), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ingredient_id'], ['ingredients.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_product_ingredients_product_id', 'product_ingredients', ['product_id'])
    op.create_index('idx_product_ingredients_ingredient_id', 'product_ingredients', ['ingredient_id'])

    op.create_table(
        'product_votes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(64), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=True),
        sa.Column('brand', sa.String(255), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('total_weighted_votes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('search_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scan_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('member_scan_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_voters', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('funding_threshold', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('status', sa.String(30), nullable=False, server_default='collecting_votes'),
        sa.Column('threshold_reached_at', sa.DateTime(), nullable=True),
        sa.Column('linked_product_id', sa.Integer(), nullable=True),
        sa.Column('results_notified_at', sa.DateTime(), nullable=True),
        sa.Column('scans_last_24h', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scans_last_7d', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('velocity_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('urgency_flag', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['linked_product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_product_votes_barcode'), 'product_votes', ['barcode'], unique=True)
    op.create_index('idx_product_votes_status', 'product_votes', ['status'])
    op.create_index('idx_product_votes_total', 'product_votes', ['total_weighted_votes'])
    op.create_index('idx_product_votes_velocity', 'product_votes', ['velocity_score'])

    op.create_table(
        'product_voters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_vote_id', sa.Integer(), nullable=False),
        sa.Column('fingerprint', sa.String(255), nullable=False),
        sa.Column('first_voted_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_vote_id'], ['product_votes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_vote_id', 'fingerprint', name='uq_product_voter'),
    )

    op.create_table(
        'scan_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_vote_id', sa.Integer(), nullable=False),
        sa.Column('vote_type', sa.String(20), nullable=False),
        sa.Column('scanned_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['product_vote_id'], ['product_votes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_scan_events_vote_time', 'scan_events', ['product_vote_id', 'scanned_at'])

    op.create_table(
        'vote_status_changes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_vote_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['product_vote_id'], ['product_votes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_vote_status_changes_id'), 'vote_status_changes', ['id'])
    op.create_index(op.f('ix_vote_status_changes_product_vote_id'), 'vote_status_changes', ['product_vote_id'])


def downgrade() -> None:
    op.drop_table('vote_status_changes')
    op.drop_index('idx_scan_events_vote_time', table_name='scan_events')
    op.drop_table('scan_events')
    op.drop_table('product_voters')
    op.drop_index('idx_product_votes_velocity', table_name='product_votes')
    op.drop_index('idx_product_votes_total', table_name='product_votes')
    op.drop_index('idx_product_votes_status', table_name='product_votes')
    op.drop_index(op.f('ix_product_votes_barcode'), table_name='product_votes')
    op.drop_table('product_votes')
    op.drop_table('product_ingredients')
    op.drop_index('idx_products_verdict', table_name='products')
    op.drop_table('products')
    op.drop_table('ingredient_aliases')
    op.drop_index('idx_ingredients_verdict', table_name='ingredients')
    op.drop_index(op.f('ix_ingredients_normalized_name'), table_name='ingredients')
    op.drop_table('ingredients')
