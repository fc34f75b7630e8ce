"""Initial schema baseline

Revision ID: 001
Revises:
Create Date: 2026-09-02

Creates the catalogue, customer, payment and webhook tables. Databases that
were created by ``init_db`` already match this revision and can be marked with:
    alembic stamp 001
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the initial database schema"""

    op.create_table(
        'admin_users',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('email', sa.Text, nullable=False, unique=True),
        sa.Column('password_hash', sa.Text, nullable=False),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('last_login', sa.Text)
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('slug', sa.Text, nullable=False, unique=True),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('price', sa.Integer, nullable=False),
        sa.Column('currency', sa.Text, nullable=False, server_default='USD'),
        sa.Column('is_active', sa.Integer, nullable=False, server_default='1'),
        sa.Column('is_featured', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('updated_at', sa.Text, nullable=False),
        sa.CheckConstraint('price >= 0', name='ck_products_price')
    )

    op.create_table(
        'coupons',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('code', sa.Text, nullable=False, unique=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('discount_type', sa.Text, nullable=False),
        sa.Column('discount_value', sa.Integer, nullable=False),
        sa.Column('currency', sa.Text),
        sa.Column('is_active', sa.Integer, nullable=False, server_default='1'),
        sa.Column('expires_at', sa.Text),
        sa.Column('usage_limit_global', sa.Integer),
        sa.Column('current_usage_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('updated_at', sa.Text, nullable=False),
        sa.CheckConstraint("discount_type IN ('percentage', 'fixed')", name='ck_coupons_discount_type'),
        sa.CheckConstraint('discount_value > 0', name='ck_coupons_discount_value')
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('email', sa.Text, nullable=False, unique=True),
        sa.Column('created_at', sa.Text, nullable=False)
    )

    op.create_table(
        'user_product_access',
        sa.Column('user_id', sa.Text, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('product_id', sa.Text, sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.Text, nullable=False)
    )

    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('product_id', sa.Text, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('user_id', sa.Text, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('customer_email', sa.Text, nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('currency', sa.Text, nullable=False),
        sa.Column('status', sa.Text, nullable=False),
        sa.Column('stripe_payment_intent_id', sa.Text),
        sa.Column('refund_id', sa.Text),
        sa.Column('refunded_amount', sa.Integer, nullable=False, server_default='0'),
        sa.Column('refunded_at', sa.Text),
        sa.Column('refunded_by', sa.Text),
        sa.Column('refund_reason', sa.Text),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('updated_at', sa.Text, nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_payment_transactions_amount'),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'partially_refunded', 'refunded')",
            name='ck_payment_transactions_status',
        )
    )

    op.create_table(
        'refund_requests',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('transaction_id', sa.Text, sa.ForeignKey('payment_transactions.id'), nullable=False),
        sa.Column('product_id', sa.Text, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('user_id', sa.Text),
        sa.Column('customer_email', sa.Text, nullable=False),
        sa.Column('requested_amount', sa.Integer, nullable=False),
        sa.Column('currency', sa.Text, nullable=False),
        sa.Column('reason', sa.Text),
        sa.Column('status', sa.Text, nullable=False, server_default='pending'),
        sa.Column('admin_id', sa.Text),
        sa.Column('admin_response', sa.Text),
        sa.Column('processed_at', sa.Text),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('updated_at', sa.Text, nullable=False),
        sa.CheckConstraint('requested_amount > 0', name='ck_refund_requests_amount'),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name='ck_refund_requests_status')
    )

    op.create_table(
        'webhook_endpoints',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('events', sa.Text, nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('secret', sa.Text, nullable=False),
        sa.Column('is_active', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('updated_at', sa.Text, nullable=False)
    )

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('endpoint_id', sa.Text, sa.ForeignKey('webhook_endpoints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.Text, nullable=False),
        sa.Column('status', sa.Text, nullable=False),
        sa.Column('http_status', sa.Integer),
        sa.Column('duration_ms', sa.Integer),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.CheckConstraint("status IN ('success', 'failed')", name='ck_webhook_logs_status')
    )


def downgrade() -> None:
    """Drop all tables"""
    op.drop_table('webhook_logs')
    op.drop_table('webhook_endpoints')
    op.drop_table('refund_requests')
    op.drop_table('payment_transactions')
    op.drop_table('user_product_access')
    op.drop_table('users')
    op.drop_table('coupons')
    op.drop_table('products')
    op.drop_table('admin_users')
