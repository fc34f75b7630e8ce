"""Give product access entries their own ID and an optional expiry

Revision ID: 004
Revises: 003
Create Date: 2026-10-18

SQLite cannot change a primary key in place, so the table is rebuilt and
existing grants are copied over with freshly generated IDs.
"""
from alembic import op
import sqlalchemy as sa

revision = '004'
down_revision = '003'
branch_labels = None
depends_on = None

# Random version-4 UUID text, built from SQLite's randomblob()
_UUID_SQL = (
    "lower(hex(randomblob(4)) || '-' || hex(randomblob(2)) || '-4' || substr(hex(randomblob(2)), 2) || '-' "
    "|| substr('89ab', 1 + (abs(random()) % 4), 1) || substr(hex(randomblob(2)), 2) || '-' || hex(randomblob(6)))"
)


def upgrade() -> None:
    op.create_table(
        'user_product_access_new',
        sa.Column('id', sa.Text, primary_key=True),
        sa.Column('user_id', sa.Text, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Text, sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.Text, nullable=False),
        sa.Column('access_expires_at', sa.Text),
        sa.Column('access_duration_days', sa.Integer),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_user_product_access'),
        sa.CheckConstraint('access_duration_days BETWEEN 1 AND 3650', name='ck_access_duration_days')
    )
    op.execute(
        f'INSERT INTO user_product_access_new (id, user_id, product_id, created_at) '
        f'SELECT {_UUID_SQL}, user_id, product_id, created_at FROM user_product_access'
    )
    op.drop_table('user_product_access')
    op.rename_table('user_product_access_new', 'user_product_access')


def downgrade() -> None:
    op.create_table(
        'user_product_access_old',
        sa.Column('user_id', sa.Text, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('product_id', sa.Text, sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.Text, nullable=False)
    )
    op.execute(
        'INSERT INTO user_product_access_old (user_id, product_id, created_at) '
        'SELECT user_id, product_id, created_at FROM user_product_access'
    )
    op.drop_table('user_product_access')
    op.rename_table('user_product_access_old', 'user_product_access')
