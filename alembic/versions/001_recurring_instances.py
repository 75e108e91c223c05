"""Recurring task instances

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None  # This is the first migration
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('user',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('timezone', sa.String(length=64), server_default='UTC', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table('task',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(length=20), server_default='medium', nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='not_started', nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('recurrence_type', sa.String(length=30), server_default='none', nullable=False),
        sa.Column('recurrence_interval', sa.Integer(), server_default='1', nullable=False),
        sa.Column('recurrence_weekdays', sa.JSON(), nullable=True),
        sa.Column('recurrence_week_of_month', sa.Integer(), nullable=True),
        sa.Column('recurrence_month_day', sa.Integer(), nullable=True),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('recurrence_series_start', sa.Date(), nullable=True),
        sa.Column('completion_based', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('recurrence_status', sa.String(length=20), server_default='active', nullable=False),
        sa.Column('recurrence_error', sa.String(length=500), nullable=True),
        sa.Column('recurring_parent_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['recurring_parent_id'], ['task.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        # Storage-level guard: one instance per parent per due date
        sa.UniqueConstraint('recurring_parent_id', 'due_date', name='uq_task_recurring_parent_due_date')
    )

    op.create_index('ix_task_user_id', 'task', ['user_id'])
    op.create_index('ix_task_project_id', 'task', ['project_id'])
    op.create_index('ix_task_due_date', 'task', ['due_date'])
    op.create_index('ix_task_recurrence_type', 'task', ['recurrence_type'])
    op.create_index('ix_task_recurrence_status', 'task', ['recurrence_status'])
    op.create_index('ix_task_recurring_parent_id', 'task', ['recurring_parent_id'])


def downgrade():
    op.drop_index('ix_task_recurring_parent_id', table_name='task')
    op.drop_index('ix_task_recurrence_status', table_name='task')
    op.drop_index('ix_task_recurrence_type', table_name='task')
    op.drop_index('ix_task_due_date', table_name='task')
    op.drop_index('ix_task_project_id', table_name='task')
    op.drop_index('ix_task_user_id', table_name='task')
    op.drop_table('task')

    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')
