"""add recurring fields to sessions

Revision ID: 5b8e2d4c7a91
Revises: 1f3c9a7b2d10
Create Date: 2025-09-09

"""
from alembic import op
import sqlalchemy as sa

revision = '5b8e2d4c7a91'
down_revision = '1f3c9a7b2d10'
branch_labels = None
depends_on = None

def upgrade():
    # batch mode so the self-referencing FK also works on SQLite
    with op.batch_alter_table('sessions', schema=None) as batch_op:
        batch_op.add_column(sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()))
        batch_op.add_column(sa.Column('recurring_pattern', sa.String(length=20), nullable=True))
        batch_op.add_column(sa.Column('recurring_end_date', sa.Date(), nullable=True))
        batch_op.add_column(sa.Column('day_of_week', sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column('recurring_parent_id', sa.Integer(), nullable=True))
        batch_op.create_foreign_key('fk_sessions_recurring_parent_id', 'sessions',
                                    ['recurring_parent_id'], ['id'], ondelete='SET NULL')
        batch_op.create_check_constraint('ck_sessions_day_of_week', 'day_of_week BETWEEN 0 AND 6')
        batch_op.create_index('ix_sessions_recurring_parent_id', ['recurring_parent_id'])

def downgrade():
    with op.batch_alter_table('sessions', schema=None) as batch_op:
        batch_op.drop_index('ix_sessions_recurring_parent_id')
        batch_op.drop_constraint('ck_sessions_day_of_week', type_='check')
        batch_op.drop_constraint('fk_sessions_recurring_parent_id', type_='foreignkey')
        batch_op.drop_column('recurring_parent_id')
        batch_op.drop_column('day_of_week')
        batch_op.drop_column('recurring_end_date')
        batch_op.drop_column('recurring_pattern')
        batch_op.drop_column('is_recurring')
