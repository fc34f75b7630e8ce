"""Add API keys with rotation and audit log

Revision ID: 002
Revises: 001
Create Date: 2026-09-16
"""
from alembic import op
import sqlalchemy as sa

revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'api_keys',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('admin_user_id', sa.Text, sa.ForeignKey('admin_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('key_prefix', sa.Text, nullable=False, unique=True),
        sa.Column('key_hash', sa.Text, nullable=False, unique=True),
        sa.Column('scopes', sa.Text, nullable=False, server_default='["*"]'),
        sa.Column('rate_limit_per_minute', sa.Integer, nullable=False, server_default='60'),
        sa.Column('is_active', sa.Integer, nullable=False, server_default='1'),
        sa.Column('expires_at', sa.Text),
        sa.Column('revoked_at', sa.Text),
        sa.Column('revoked_reason', sa.Text),
        sa.Column('rotation_grace_until', sa.Text),
        sa.Column('rotated_from_id', sa.Text, sa.ForeignKey('api_keys.id', ondelete='SET NULL')),
        sa.Column('last_used_at', sa.Text),
        sa.Column('last_used_ip', sa.Text),
        sa.Column('usage_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('updated_at', sa.Text, nullable=False),
        sa.CheckConstraint('rate_limit_per_minute BETWEEN 1 AND 1000', name='ck_api_keys_rate_limit')
    )

    op.create_table(
        'api_key_audit_log',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('api_key_id', sa.Text, sa.ForeignKey('api_keys.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.Text, nullable=False),
        sa.Column('event_data', sa.Text, nullable=False, server_default='{}'),
        sa.Column('ip_address', sa.Text),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.CheckConstraint(
            "event_type IN ('created', 'rotated', 'revoked', 'expired', 'updated')",
            name='ck_api_key_audit_log_event_type',
        )
    )


def downgrade() -> None:
    op.drop_table('api_key_audit_log')
    op.drop_table('api_keys')
