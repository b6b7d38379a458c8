"""Admin auth schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Admin key (singleton credential)
    op.create_table(
        'admin_keys',
        sa.Column('key_id', sa.String(length=64), nullable=False, server_default='system-admin'),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('key_hash', sa.String(length=255), nullable=False),
        sa.Column('allowed_ips', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='["*"]'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_rotated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('key_id')
    )

    # Admin sessions
    op.create_table(
        'admin_sessions',
        sa.Column('session_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('last_activity', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('session_id')
    )
    op.create_index(op.f('ix_admin_sessions_token'), 'admin_sessions', ['token'], unique=True)
    op.create_index('idx_admin_sessions_user_created', 'admin_sessions', ['user_id', 'created_at'], unique=False)
    op.create_index('idx_admin_sessions_active_expires', 'admin_sessions', ['is_active', 'expires_at'], unique=False)

    # System audit log (append-only)
    op.create_table(
        'system_audit_logs',
        sa.Column('log_id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('log_id')
    )
    op.create_index(op.f('ix_system_audit_logs_created_at'), 'system_audit_logs', ['created_at'], unique=False)
    op.create_index('idx_system_audit_logs_action_created', 'system_audit_logs', ['action', 'created_at'], unique=False)
    op.create_index('idx_system_audit_logs_ip_created', 'system_audit_logs', ['ip_address', 'created_at'], unique=False)
    op.create_index('idx_system_audit_logs_user_created', 'system_audit_logs', ['user_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_system_audit_logs_user_created', table_name='system_audit_logs')
    op.drop_index('idx_system_audit_logs_ip_created', table_name='system_audit_logs')
    op.drop_index('idx_system_audit_logs_action_created', table_name='system_audit_logs')
    op.drop_index(op.f('ix_system_audit_logs_created_at'), table_name='system_audit_logs')
    op.drop_table('system_audit_logs')

    op.drop_index('idx_admin_sessions_active_expires', table_name='admin_sessions')
    op.drop_index('idx_admin_sessions_user_created', table_name='admin_sessions')
    op.drop_index(op.f('ix_admin_sessions_token'), table_name='admin_sessions')
    op.drop_table('admin_sessions')

    op.drop_table('admin_keys')
