"""Gamification schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Append-only point ledger
    op.create_table(
        'point_transactions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('source', sa.String(64), nullable=False),
        sa.Column('source_id', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('earned_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('points > 0', name='ck_point_transactions_points_positive'),
    )
    op.create_index('ix_point_transactions_user_earned', 'point_transactions', ['user_id', 'earned_at'])
    op.create_index('ix_point_transactions_user_event', 'point_transactions', ['user_id', 'event_type'])

    # One aggregate row per user, guarded by version
    op.create_table(
        'user_aggregates',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('streak_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('badges_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_user_aggregates_total_xp', 'user_aggregates', ['total_xp'])

    # Weekly and monthly rollups
    op.create_table(
        'period_aggregates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('period_type', sa.String(16), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_earned_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'period_type', 'period_start', name='uq_period_aggregates_user_period'),
    )
    op.create_index(
        'ix_period_aggregates_period_xp', 'period_aggregates',
        ['period_type', 'period_start', 'total_xp']
    )

    # Badge catalog and unlocks
    op.create_table(
        'badges',
        sa.Column('key', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('points_awarded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('criteria_type', sa.String(16), nullable=False),
        sa.Column('criteria_value', sa.Integer(), nullable=False),
    )

    op.create_table(
        'earned_badges',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('badge_key', sa.String(64), sa.ForeignKey('badges.key'), nullable=False),
        sa.Column('earned_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'badge_key', name='uq_earned_badges_user_badge'),
    )


def downgrade():
    op.drop_table('earned_badges')
    op.drop_table('badges')
    op.drop_index('ix_period_aggregates_period_xp', table_name='period_aggregates')
    op.drop_table('period_aggregates')
    op.drop_index('ix_user_aggregates_total_xp', table_name='user_aggregates')
    op.drop_table('user_aggregates')
    op.drop_index('ix_point_transactions_user_event', table_name='point_transactions')
    op.drop_index('ix_point_transactions_user_earned', table_name='point_transactions')
    op.drop_table('point_transactions')
