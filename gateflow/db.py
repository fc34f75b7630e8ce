from __future__ import annotations

import logging
import os
import sqlite3
import uuid
from typing import Callable, Optional

import bcrypt

from gateflow.config import Config
from gateflow.utils.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

DATABASE_PATH = Config.DATABASE_PATH

SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS admin_users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL,
        last_login TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS api_keys (
        id TEXT PRIMARY KEY,
        admin_user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        key_prefix TEXT NOT NULL UNIQUE,
        key_hash TEXT NOT NULL UNIQUE,
        scopes TEXT NOT NULL DEFAULT '["*"]',
        rate_limit_per_minute INTEGER NOT NULL DEFAULT 60
            CHECK (rate_limit_per_minute BETWEEN 1 AND 1000),
        is_active INTEGER NOT NULL DEFAULT 1,
        expires_at TEXT,
        revoked_at TEXT,
        revoked_reason TEXT,
        rotation_grace_until TEXT,
        rotated_from_id TEXT,
        last_used_at TEXT,
        last_used_ip TEXT,
        usage_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (admin_user_id) REFERENCES admin_users(id) ON DELETE CASCADE,
        FOREIGN KEY (rotated_from_id) REFERENCES api_keys(id) ON DELETE SET NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS api_key_audit_log (
        id TEXT PRIMARY KEY,
        api_key_id TEXT NOT NULL,
        event_type TEXT NOT NULL
            CHECK (event_type IN ('created', 'rotated', 'revoked', 'expired', 'updated')),
        event_data TEXT NOT NULL DEFAULT '{}',
        ip_address TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (api_key_id) REFERENCES api_keys(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        price INTEGER NOT NULL CHECK (price >= 0),
        currency TEXT NOT NULL DEFAULT 'USD',
        is_active INTEGER NOT NULL DEFAULT 1,
        is_featured INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS coupons (
        id TEXT PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        discount_type TEXT NOT NULL CHECK (discount_type IN ('percentage', 'fixed')),
        discount_value INTEGER NOT NULL CHECK (discount_value > 0),
        currency TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        expires_at TEXT,
        usage_limit_global INTEGER,
        current_usage_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS user_product_access (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        product_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        access_expires_at TEXT,
        access_duration_days INTEGER CHECK (access_duration_days BETWEEN 1 AND 3650),
        UNIQUE (user_id, product_id),
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
        FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS payment_transactions (
        id TEXT PRIMARY KEY,
        product_id TEXT NOT NULL,
        user_id TEXT,
        customer_email TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount >= 0),
        currency TEXT NOT NULL,
        status TEXT NOT NULL
            CHECK (status IN ('pending', 'completed', 'partially_refunded', 'refunded')),
        stripe_payment_intent_id TEXT,
        refund_id TEXT,
        refunded_amount INTEGER NOT NULL DEFAULT 0,
        refunded_at TEXT,
        refunded_by TEXT,
        refund_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (product_id) REFERENCES products(id),
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE SET NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS refund_requests (
        id TEXT PRIMARY KEY,
        transaction_id TEXT NOT NULL,
        product_id TEXT NOT NULL,
        user_id TEXT,
        customer_email TEXT NOT NULL,
        requested_amount INTEGER NOT NULL CHECK (requested_amount > 0),
        currency TEXT NOT NULL,
        reason TEXT,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected')),
        admin_id TEXT,
        admin_response TEXT,
        processed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (transaction_id) REFERENCES payment_transactions(id),
        FOREIGN KEY (product_id) REFERENCES products(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS webhook_endpoints (
        id TEXT PRIMARY KEY,
        url TEXT NOT NULL,
        events TEXT NOT NULL,
        description TEXT,
        secret TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS webhook_logs (
        id TEXT PRIMARY KEY,
        endpoint_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('success', 'failed')),
        http_status INTEGER,
        duration_ms INTEGER,
        created_at TEXT NOT NULL,
        FOREIGN KEY (endpoint_id) REFERENCES webhook_endpoints(id) ON DELETE CASCADE
    )
    ''',
)

INDEXES = (
    'CREATE INDEX IF NOT EXISTS idx_api_keys_admin_created ON api_keys(admin_user_id, created_at, id)',
    'CREATE INDEX IF NOT EXISTS idx_api_keys_grace ON api_keys(rotation_grace_until) WHERE revoked_at IS NULL',
    'CREATE INDEX IF NOT EXISTS idx_audit_key_created ON api_key_audit_log(api_key_id, created_at)',
    'CREATE INDEX IF NOT EXISTS idx_products_created ON products(created_at, id)',
    'CREATE INDEX IF NOT EXISTS idx_coupons_created ON coupons(created_at, id)',
    'CREATE INDEX IF NOT EXISTS idx_users_created ON users(created_at, id)',
    'CREATE INDEX IF NOT EXISTS idx_payments_created ON payment_transactions(created_at, id)',
    'CREATE INDEX IF NOT EXISTS idx_payments_status ON payment_transactions(status)',
    'CREATE INDEX IF NOT EXISTS idx_refund_requests_created ON refund_requests(created_at, id)',
    'CREATE INDEX IF NOT EXISTS idx_webhook_logs_created ON webhook_logs(created_at, id)',
)


def _get_database_path(path: Optional[str] = None) -> str:
    """Resolve database path at runtime (supports tests overriding env)."""
    return path or os.getenv('DATABASE_PATH', DATABASE_PATH)


def get_db(path: Optional[str] = None) -> sqlite3.Connection:
    """Get database connection."""
    conn = sqlite3.connect(_get_database_path(path), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    conn.execute('PRAGMA busy_timeout = 5000')
    return conn


def make_db_factory(path: Optional[str] = None) -> Callable[[], sqlite3.Connection]:
    resolved = _get_database_path(path)
    return lambda: get_db(resolved)


def ensure_data_dir(path: Optional[str] = None) -> None:
    directory = os.path.dirname(_get_database_path(path))
    if directory:
        os.makedirs(directory, exist_ok=True)


def init_db(path: Optional[str] = None, admin_email: Optional[str] = None, admin_password: Optional[str] = None) -> None:
    """Initialize SQLite database and bootstrap the first admin."""
    conn = get_db(path)
    try:
        conn.execute('PRAGMA journal_mode = WAL')
        cursor = conn.cursor()
        for statement in SCHEMA:
            cursor.execute(statement)
        for statement in INDEXES:
            cursor.execute(statement)

        cursor.execute('SELECT COUNT(*) FROM admin_users')
        if cursor.fetchone()[0] == 0:
            email = (admin_email or Config.ADMIN_EMAIL).strip().lower()
            password = admin_password or Config.ADMIN_PASSWORD
            password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())
            cursor.execute(
                'INSERT INTO admin_users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)',
                (str(uuid.uuid4()), email, password_hash.decode('utf-8'), isoformat(utcnow())),
            )
            logger.warning(f"Created default admin user {email}. Change the password after first login!")

        conn.commit()
    finally:
        conn.close()
