"""Permission requests

Revision ID: 002_permission_requests
Revises: 001_initial_schema
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_permission_requests'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'permission_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('requested_by', sa.String(128), nullable=False),
        sa.Column('requested_by_email', sa.String(255), nullable=False),
        sa.Column('requested_permissions', sa.JSON(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('business_justification', sa.Text(), nullable=True),
        sa.Column('requested_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('priority', sa.String(16), nullable=False, server_default='normal'),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('reviewed_by', sa.String(128), nullable=True),
        sa.Column('reviewed_by_email', sa.String(255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('granted_permissions', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_permission_requests'),
    )
    op.create_index('ix_permission_requests_id', 'permission_requests', ['id'], unique=False)
    op.create_index('ix_permission_requests_requested_by', 'permission_requests', ['requested_by'], unique=False)
    op.create_index('ix_permission_requests_status', 'permission_requests', ['status'], unique=False)
    op.create_index('ix_permission_requests_reviewed_by', 'permission_requests', ['reviewed_by'], unique=False)
    op.create_index(
        'ix_permission_requests_requested_by_created_at',
        'permission_requests',
        ['requested_by', 'created_at'],
        unique=False,
    )
    op.create_index(
        'ix_permission_requests_status_created_at',
        'permission_requests',
        ['status', 'created_at'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('ix_permission_requests_status_created_at', table_name='permission_requests')
    op.drop_index('ix_permission_requests_requested_by_created_at', table_name='permission_requests')
    op.drop_index('ix_permission_requests_reviewed_by', table_name='permission_requests')
    op.drop_index('ix_permission_requests_status', table_name='permission_requests')
    op.drop_index('ix_permission_requests_requested_by', table_name='permission_requests')
    op.drop_index('ix_permission_requests_id', table_name='permission_requests')
    op.drop_table('permission_requests')
