"""Initial schema for the sprint board.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-01-05 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('sprint_length_days', sa.Integer(), nullable=False, server_default='14'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'sprints',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('workspace_id', sa.String(32), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='active'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'tasks',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('sprint_id', sa.String(32), sa.ForeignKey('sprints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('summary', sa.String(500), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='To Do'),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimate', sa.Float(), nullable=True),
        sa.Column('blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('links', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # One spillover row per (sprint, task); the upsert relies on it
    op.create_table(
        'spillovers',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('sprint_id', sa.String(32), sa.ForeignKey('sprints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('task_id', sa.String(32), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('spillover_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sprint_id', 'task_id', name='uq_spillover_sprint_task')
    )

    op.create_table(
        'sprint_insights',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('sprint_id', sa.String(32), sa.ForeignKey('sprints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('spillover_notes', sa.JSON(), nullable=True),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('model', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('ix_sprints_workspace_id', 'sprints', ['workspace_id'])
    op.create_index('ix_tasks_sprint_id', 'tasks', ['sprint_id'])
    op.create_index('ix_spillovers_sprint_id', 'spillovers', ['sprint_id'])
    op.create_index('ix_sprint_insights_sprint_id', 'sprint_insights', ['sprint_id'])


def downgrade() -> None:
    op.drop_index('ix_sprint_insights_sprint_id', table_name='sprint_insights')
    op.drop_index('ix_spillovers_sprint_id', table_name='spillovers')
    op.drop_index('ix_tasks_sprint_id', table_name='tasks')
    op.drop_index('ix_sprints_workspace_id', table_name='sprints')

    op.drop_table('sprint_insights')
    op.drop_table('spillovers')
    op.drop_table('tasks')
    op.drop_table('sprints')
    op.drop_table('workspaces')
