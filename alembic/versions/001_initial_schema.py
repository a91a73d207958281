"""Initial schema: users, audit trail and catalog entries

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(128), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('department', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('bio', sa.String(2000), nullable=True),
        sa.Column('full_role', sa.String(32), nullable=False, server_default='user'),
        sa.Column('status', sa.String(20), nullable=False, server_default='invited'),
        sa.Column('collection_permissions', sa.JSON(), nullable=False),
        sa.Column('permission_overrides', sa.JSON(), nullable=False),
        sa.Column('last_role_change', sa.JSON(), nullable=True),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], name='fk_users_created_by_id_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_users')
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_external_id', 'users', ['external_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_full_role', 'users', ['full_role'], unique=False)
    op.create_index('ix_users_status', 'users', ['status'], unique=False)

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('level', sa.String(16), nullable=False, server_default='info'),
        sa.Column('user_id', sa.String(128), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('user_role', sa.String(32), nullable=True),
        sa.Column('target_user_id', sa.String(128), nullable=True),
        sa.Column('resource', sa.String(64), nullable=True),
        sa.Column('resource_id', sa.String(255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs')
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'], unique=False)
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'], unique=False)
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'], unique=False)
    op.create_index('ix_audit_logs_target_user_id', 'audit_logs', ['target_user_id'], unique=False)
    op.create_index('ix_audit_logs_resource', 'audit_logs', ['resource'], unique=False)
    # Filtering the trail by action over a time range
    op.create_index('ix_audit_logs_action_timestamp', 'audit_logs', ['action', 'timestamp'], unique=False)

    # Create catalog_entries table
    op.create_table(
        'catalog_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('collection', sa.String(32), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(128), nullable=True),
        sa.Column('updated_by', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_catalog_entries'),
        sa.UniqueConstraint('collection', 'slug', name='uq_catalog_collection_slug')
    )
    op.create_index('ix_catalog_entries_id', 'catalog_entries', ['id'], unique=False)
    op.create_index('ix_catalog_entries_collection', 'catalog_entries', ['collection'], unique=False)
    op.create_index('ix_catalog_entries_slug', 'catalog_entries', ['slug'], unique=False)
    op.create_index('ix_catalog_entries_status', 'catalog_entries', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_catalog_entries_status', table_name='catalog_entries')
    op.drop_index('ix_catalog_entries_slug', table_name='catalog_entries')
    op.drop_index('ix_catalog_entries_collection', table_name='catalog_entries')
    op.drop_index('ix_catalog_entries_id', table_name='catalog_entries')
    op.drop_table('catalog_entries')

    op.drop_index('ix_audit_logs_action_timestamp', table_name='audit_logs')
    op.drop_index('ix_audit_logs_resource', table_name='audit_logs')
    op.drop_index('ix_audit_logs_target_user_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_user_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_index('ix_audit_logs_id', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('ix_users_status', table_name='users')
    op.drop_index('ix_users_full_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_external_id', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
