"""Add indexes backing cursor pagination and the grace sweep

Revision ID: 003
Revises: 002
Create Date: 2026-10-01
"""
from alembic import op

revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None

INDEXES = (
    ('idx_api_keys_admin_created', 'api_keys', ['admin_user_id', 'created_at', 'id']),
    ('idx_audit_key_created', 'api_key_audit_log', ['api_key_id', 'created_at']),
    ('idx_products_created', 'products', ['created_at', 'id']),
    ('idx_coupons_created', 'coupons', ['created_at', 'id']),
    ('idx_users_created', 'users', ['created_at', 'id']),
    ('idx_payments_created', 'payment_transactions', ['created_at', 'id']),
    ('idx_payments_status', 'payment_transactions', ['status']),
    ('idx_refund_requests_created', 'refund_requests', ['created_at', 'id']),
    ('idx_webhook_logs_created', 'webhook_logs', ['created_at', 'id']),
)


def upgrade() -> None:
    for name, table, columns in INDEXES:
        op.create_index(name, table, columns)

    # Partial index: only keys still waiting for the grace sweep
    op.execute(
        "CREATE INDEX idx_api_keys_grace ON api_keys(rotation_grace_until) WHERE revoked_at IS NULL"
    )


def downgrade() -> None:
    op.drop_index('idx_api_keys_grace', 'api_keys')
    for name, table, _ in reversed(INDEXES):
        op.drop_index(name, table)
