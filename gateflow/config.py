"""Centralized configuration for GateFlow."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Base configuration loaded from environment variables."""
    SECRET_KEY = os.getenv('SECRET_KEY')
    DATABASE_PATH = os.getenv('DATABASE_PATH', '/data/gateflow.db')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    PORT = int(os.getenv('PORT', '5000'))
    SITE_URL = os.getenv('SITE_URL', 'http://localhost:3000')

    # Per-IP limit applied by Flask-Limiter to every route
    RATE_LIMIT_PER_MINUTE = int(os.getenv('RATE_LIMIT_PER_MINUTE', '120'))
    RATELIMIT_DEFAULT = f"{RATE_LIMIT_PER_MINUTE} per minute"
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', 'true')
    # Per-key limits share the same storage backend
    API_KEY_RATELIMIT_ENABLED = _env_bool('API_KEY_RATELIMIT_ENABLED', 'true')

    API_KEY_ENVIRONMENT = os.getenv('API_KEY_ENVIRONMENT', 'live')
    API_KEY_USAGE_WORKERS = int(os.getenv('API_KEY_USAGE_WORKERS', '2'))

    SESSION_COOKIE_SECURE = _env_bool('SESSION_COOKIE_SECURE')
    SESSION_COOKIE_HTTPONLY = _env_bool('SESSION_COOKIE_HTTPONLY', 'true')
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    FORCE_HTTPS = _env_bool('FORCE_HTTPS')

    # Session requests are CSRF-checked explicitly; API key requests are not
    WTF_CSRF_ENABLED = _env_bool('WTF_CSRF_ENABLED', 'true')
    WTF_CSRF_CHECK_DEFAULT = False
    WTF_CSRF_TIME_LIMIT = None

    ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', 'admin@example.com')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin')

    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_API_BASE = os.getenv('STRIPE_API_BASE', 'https://api.stripe.com')
    OUTBOUND_TIMEOUT_SECONDS = float(os.getenv('OUTBOUND_TIMEOUT_SECONDS', '10'))

    EXCHANGE_RATE_PROVIDER = os.getenv('EXCHANGE_RATE_PROVIDER', 'manual')
    EXCHANGE_RATE_API_KEY = os.getenv('EXCHANGE_RATE_API_KEY')
    EXCHANGE_RATE_CACHE_SECONDS = int(os.getenv('EXCHANGE_RATE_CACHE_SECONDS', '3600'))
    DISPLAY_CURRENCY = os.getenv('DISPLAY_CURRENCY', 'USD').upper()

    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', 'true')
    GRACE_SWEEP_INTERVAL_MINUTES = int(os.getenv('GRACE_SWEEP_INTERVAL_MINUTES', '15'))


class DevelopmentConfig(Config):
    DEBUG = True
    API_KEY_ENVIRONMENT = 'test'


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key-for-testing'
    API_KEY_ENVIRONMENT = 'test'
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    STRIPE_SECRET_KEY = None
    EXCHANGE_RATE_PROVIDER = 'manual'
