"""create schedule tables

Revision ID: 1f3c9a7b2d10
Revises:
Create Date: 2025-09-02 10:12:31.518204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1f3c9a7b2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum('trainer', 'client', name='user_role'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('trainer_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['trainer_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'trainer_id', name='uq_clients_user_trainer')
    )
    op.create_index('ix_clients_user_id', 'clients', ['user_id'])
    op.create_index('ix_clients_trainer_id', 'clients', ['trainer_id'])

    op.create_table('workouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('trainer_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.ForeignKeyConstraint(['trainer_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_workouts_trainer_id', 'workouts', ['trainer_id'])

    op.create_table('sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('trainer_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('workout_id', sa.Integer(), nullable=True),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('session_time', sa.Time(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('session_type', sa.String(length=20), nullable=False, server_default='in_person'),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('meeting_link', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('scheduled', 'confirmed', 'completed', 'cancelled', name='session_status'),
                  nullable=False, server_default='scheduled'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('duration > 0', name='ck_sessions_duration_positive'),
        sa.ForeignKeyConstraint(['trainer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['client_id'], ['users.id']),
        sa.ForeignKeyConstraint(['workout_id'], ['workouts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    # conflict detection always filters on trainer + date
    op.create_index('ix_sessions_trainer_date', 'sessions', ['trainer_id', 'session_date'])
    op.create_index('ix_sessions_client_id', 'sessions', ['client_id'])
    op.create_index('ix_sessions_status', 'sessions', ['status'])

    op.create_table('session_changes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=20), nullable=False),
        sa.Column('original_date', sa.Date(), nullable=True),
        sa.Column('original_time', sa.Time(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requested_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_session_changes_session_id', 'session_changes', ['session_id'])

    op.create_table('trainer_availability',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('trainer_id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_day_of_week'),
        sa.CheckConstraint('end_time > start_time', name='ck_availability_range'),
        sa.ForeignKeyConstraint(['trainer_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('trainer_id', 'day_of_week', 'start_time', name='uq_availability_slot')
    )
    op.create_index('ix_trainer_availability_trainer_id', 'trainer_availability', ['trainer_id'])


def downgrade():
    op.drop_index('ix_trainer_availability_trainer_id', table_name='trainer_availability')
    op.drop_table('trainer_availability')
    op.drop_index('ix_session_changes_session_id', table_name='session_changes')
    op.drop_table('session_changes')
    op.drop_index('ix_sessions_status', table_name='sessions')
    op.drop_index('ix_sessions_client_id', table_name='sessions')
    op.drop_index('ix_sessions_trainer_date', table_name='sessions')
    op.drop_table('sessions')
    op.drop_index('ix_workouts_trainer_id', table_name='workouts')
    op.drop_table('workouts')
    op.drop_index('ix_clients_trainer_id', table_name='clients')
    op.drop_index('ix_clients_user_id', table_name='clients')
    op.drop_table('clients')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
