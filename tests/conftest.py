"""
Pytest fixtures for GateFlow tests
"""
from concurrent.futures import Executor, Future
from datetime import timedelta

import bcrypt
import pytest

from gateflow import create_app
from gateflow.config import TestingConfig
from gateflow.db import init_db, make_db_factory
from gateflow.services.base import PaymentProviderError
from gateflow.services.payment_provider import PaymentProvider, RefundResult
from gateflow.utils.timeutil import isoformat, utcnow

ADMIN_EMAIL = 'admin@example.com'
ADMIN_PASSWORD = 'admin-password'


class Clock:
    """Controllable replacement for ``utcnow`` handed to services under test."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class InlineExecutor(Executor):
    """Runs submitted work immediately so usage updates are visible to assertions."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class FakePaymentProvider(PaymentProvider):
    name = 'fake'

    def __init__(self):
        self.calls = []
        self.fail = False

    def create_refund(self, payment_intent_id, amount=None, reason=None, metadata=None):
        self.calls.append({
            'payment_intent_id': payment_intent_id,
            'amount': amount,
            'reason': reason,
            'metadata': metadata,
        })
        if self.fail:
            raise PaymentProviderError('Payment provider rejected the refund: card_declined')
        return RefundResult(
            id=f're_{len(self.calls)}',
            amount=amount if amount is not None else 0,
            currency='usd',
            status='succeeded',
            reason=reason,
        )


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / 'gateflow-test.db')
    init_db(path, admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD)
    return path


@pytest.fixture
def db_factory(db_path):
    return make_db_factory(db_path)


@pytest.fixture
def payment_provider():
    return FakePaymentProvider()


@pytest.fixture
def config_class(db_path):
    class Config(TestingConfig):
        DATABASE_PATH = db_path

    return Config


@pytest.fixture
def app(config_class, payment_provider):
    """Create application for testing"""
    return create_app(config_class, payment_provider=payment_provider, usage_executor=InlineExecutor())


@pytest.fixture
def client(app):
    """Create a test client"""
    return app.test_client()


@pytest.fixture
def admin_user(app):
    return app.extensions['gateflow']['admin_users'].get_by_email(ADMIN_EMAIL)


def login(client, user):
    with client.session_transaction() as sess:
        sess['_user_id'] = user.id
        sess['_fresh'] = True
    return client


@pytest.fixture
def authenticated_client(client, admin_user):
    """Create an authenticated test client"""
    return login(client, admin_user)


@pytest.fixture
def other_admin(app):
    password_hash = bcrypt.hashpw(b'other-password', bcrypt.gensalt()).decode('utf-8')
    return app.extensions['gateflow']['admin_users'].create('other@example.com', password_hash, isoformat(utcnow()))


@pytest.fixture
def other_client(app, other_admin):
    return login(app.test_client(), other_admin)


@pytest.fixture
def make_api_key(app, admin_user):
    """Issue a key directly through the service and return ``(key, plaintext)``."""
    service = app.extensions['gateflow']['api_keys']

    def _make(name='Test Key', scopes=None, rate_limit_per_minute=None, owner=None, expires_at=None):
        owner_id = (owner or admin_user).id
        return service.issue(owner_id, name, scopes=scopes, rate_limit_per_minute=rate_limit_per_minute,
                             expires_at=expires_at)

    return _make


@pytest.fixture
def api_client(app, make_api_key):
    """Return a factory for test clients that authenticate with a fresh API key."""

    def _client(scopes=None, **kwargs):
        _, plaintext = make_api_key(scopes=scopes, **kwargs)
        test_client = app.test_client()
        test_client.environ_base['HTTP_X_API_KEY'] = plaintext
        return test_client

    return _client
