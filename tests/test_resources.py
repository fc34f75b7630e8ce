"""Tests for product, coupon, user and webhook endpoints"""
import uuid

import pytest

from gateflow.repositories import CustomerRepository, ProductAccessRepository, WebhookLogRepository
from gateflow.utils.timeutil import isoformat, utcnow


def _product(client, **overrides):
    payload = {'name': 'Course', 'slug': 'course', 'price': 4900, 'currency': 'usd'}
    payload.update(overrides)
    return client.post('/api/v1/products', json=payload)


class TestProducts:
    """Tests for /api/v1/products"""

    def test_create_and_get(self, authenticated_client):
        response = _product(authenticated_client, description='Video course')
        assert response.status_code == 201
        created = response.get_json()['data']
        assert created['currency'] == 'USD'
        assert created['is_active'] is True
        assert created['is_featured'] is False

        fetched = authenticated_client.get(f"/api/v1/products/{created['id']}")
        assert fetched.get_json()['data'] == created

    def test_create_requires_fields(self, authenticated_client):
        response = authenticated_client.post('/api/v1/products', json={'name': 'No slug'})
        assert response.status_code == 400
        assert 'slug' in response.get_json()['error']['message']

    def test_create_rejects_unknown_fields(self, authenticated_client):
        response = _product(authenticated_client, id='chosen-id', created_at='2001-01-01')
        assert response.status_code == 400
        assert response.get_json()['error']['details']['unknown_fields'] == ['created_at', 'id']

    @pytest.mark.parametrize('overrides', [
        {'price': -1},
        {'price': 10.5},
        {'price': '100'},
        {'slug': 'Not A Slug'},
        {'currency': 'dollars'},
        {'is_active': 'yes'},
    ])
    def test_create_validation(self, authenticated_client, overrides):
        response = _product(authenticated_client, **overrides)
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'

    def test_duplicate_slug_conflicts(self, authenticated_client):
        assert _product(authenticated_client).status_code == 201
        response = _product(authenticated_client)
        assert response.status_code == 409
        assert response.get_json()['error']['code'] == 'CONFLICT'

    def test_update(self, authenticated_client):
        product_id = _product(authenticated_client).get_json()['data']['id']
        response = authenticated_client.patch(f'/api/v1/products/{product_id}', json={
            'price': 5900,
            'is_featured': True,
        })
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['price'] == 5900
        assert data['is_featured'] is True

    def test_update_collects_field_errors(self, authenticated_client):
        product_id = _product(authenticated_client).get_json()['data']['id']
        response = authenticated_client.patch(f'/api/v1/products/{product_id}', json={
            'price': -5,
            'slug': 'BAD SLUG',
        })
        assert response.status_code == 400
        fields = response.get_json()['error']['details']['fields']
        assert set(fields) == {'price', 'slug'}

    def test_update_missing_product(self, authenticated_client):
        response = authenticated_client.patch(f'/api/v1/products/{uuid.uuid4()}', json={'price': 1})
        assert response.status_code == 404

    def test_delete(self, authenticated_client):
        product_id = _product(authenticated_client).get_json()['data']['id']
        response = authenticated_client.delete(f'/api/v1/products/{product_id}')
        assert response.status_code == 204
        assert authenticated_client.get(f'/api/v1/products/{product_id}').status_code == 404

    def test_list_filters(self, authenticated_client):
        _product(authenticated_client, name='Alpha', slug='alpha')
        _product(authenticated_client, name='Beta', slug='beta', is_active=False)

        active = authenticated_client.get('/api/v1/products?status=active').get_json()['data']
        assert [p['slug'] for p in active] == ['alpha']
        inactive = authenticated_client.get('/api/v1/products?status=inactive').get_json()['data']
        assert [p['slug'] for p in inactive] == ['beta']
        found = authenticated_client.get('/api/v1/products?search=bet').get_json()['data']
        assert [p['slug'] for p in found] == ['beta']
        assert authenticated_client.get('/api/v1/products?status=archived').status_code == 400

    def test_sort_by_name(self, authenticated_client):
        for name in ('Charlie', 'Alpha', 'Bravo'):
            _product(authenticated_client, name=name, slug=name.lower())
        names = [p['name'] for p in authenticated_client.get('/api/v1/products?sort=name').get_json()['data']]
        assert names == ['Alpha', 'Bravo', 'Charlie']


def _coupon(client, **overrides):
    payload = {'code': 'save10', 'discount_type': 'percentage', 'discount_value': 10}
    payload.update(overrides)
    return client.post('/api/v1/coupons', json=payload)


class TestCoupons:
    """Tests for /api/v1/coupons"""

    def test_create(self, authenticated_client):
        response = _coupon(authenticated_client)
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['code'] == 'SAVE10'
        assert data['name'] == 'SAVE10'
        assert data['current_usage_count'] == 0

    def test_percentage_cannot_exceed_100(self, authenticated_client):
        response = _coupon(authenticated_client, discount_value=150)
        assert response.status_code == 400

    def test_fixed_requires_currency(self, authenticated_client):
        assert _coupon(authenticated_client, discount_type='fixed', discount_value=500).status_code == 400
        response = _coupon(authenticated_client, discount_type='fixed', discount_value=500, currency='eur')
        assert response.status_code == 201
        assert response.get_json()['data']['currency'] == 'EUR'

    def test_invalid_code(self, authenticated_client):
        assert _coupon(authenticated_client, code='a!').status_code == 400

    def test_update_checks_merged_values(self, authenticated_client):
        coupon_id = _coupon(authenticated_client).get_json()['data']['id']
        response = authenticated_client.patch(f'/api/v1/coupons/{coupon_id}', json={'discount_value': 101})
        assert response.status_code == 400
        response = authenticated_client.patch(f'/api/v1/coupons/{coupon_id}', json={'code': 'OTHER'})
        assert response.status_code == 400
        response = authenticated_client.patch(f'/api/v1/coupons/{coupon_id}', json={'usage_limit_global': 5})
        assert response.status_code == 200
        assert response.get_json()['data']['usage_limit_global'] == 5

    def test_status_filters(self, authenticated_client):
        _coupon(authenticated_client, code='ACTIVE1')
        _coupon(authenticated_client, code='OFF1', is_active=False)

        active = authenticated_client.get('/api/v1/coupons?status=active').get_json()['data']
        assert [c['code'] for c in active] == ['ACTIVE1']
        inactive = authenticated_client.get('/api/v1/coupons?status=inactive').get_json()['data']
        assert [c['code'] for c in inactive] == ['OFF1']
        assert authenticated_client.get('/api/v1/coupons?status=expired').get_json()['data'] == []

    def test_delete(self, authenticated_client):
        coupon_id = _coupon(authenticated_client).get_json()['data']['id']
        assert authenticated_client.delete(f'/api/v1/coupons/{coupon_id}').status_code == 204
        assert authenticated_client.delete(f'/api/v1/coupons/{coupon_id}').status_code == 404


class TestUsers:
    """Tests for /api/v1/users"""

    @pytest.fixture
    def customer(self, db_factory, authenticated_client):
        product_id = _product(authenticated_client).get_json()['data']['id']
        now = isoformat(utcnow())
        customers = CustomerRepository(db_factory)
        user = customers.create(customers.new_id(), 'buyer@example.com', now)
        ProductAccessRepository(db_factory).grant(user.id, product_id, now)
        return user

    def test_list(self, authenticated_client, customer):
        data = authenticated_client.get('/api/v1/users').get_json()['data']
        assert len(data) == 1
        assert data[0]['email'] == 'buyer@example.com'
        assert data[0]['products_count'] == 1

    def test_search(self, authenticated_client, customer):
        assert len(authenticated_client.get('/api/v1/users?search=BUYER').get_json()['data']) == 1
        assert authenticated_client.get('/api/v1/users?search=nobody').get_json()['data'] == []

    def test_get_includes_product_access(self, authenticated_client, customer):
        data = authenticated_client.get(f'/api/v1/users/{customer.id}').get_json()['data']
        assert data['product_access'][0]['product_slug'] == 'course'

    def test_sort_field_whitelist(self, authenticated_client, customer):
        assert authenticated_client.get('/api/v1/users?sort=email').status_code == 200
        assert authenticated_client.get('/api/v1/users?sort_by=password').status_code == 400

    def test_missing_user(self, authenticated_client):
        assert authenticated_client.get(f'/api/v1/users/{uuid.uuid4()}').status_code == 404


class TestWebhooks:
    """Tests for /api/v1/webhooks"""

    def _create(self, client, **overrides):
        payload = {'url': 'https://hooks.example.com/gateflow', 'events': ['payment.completed']}
        payload.update(overrides)
        return client.post('/api/v1/webhooks', json=payload)

    def test_create_returns_secret_once(self, authenticated_client):
        response = self._create(authenticated_client)
        assert response.status_code == 201
        created = response.get_json()['data']
        assert created['secret'].startswith('whsec_')

        fetched = authenticated_client.get(f"/api/v1/webhooks/{created['id']}").get_json()['data']
        assert 'secret' not in fetched
        listed = authenticated_client.get('/api/v1/webhooks').get_json()['data']
        assert 'secret' not in listed[0]

    @pytest.mark.parametrize('overrides', [
        {'url': 'ftp://example.com'},
        {'events': []},
        {'events': ['payment.exploded']},
    ])
    def test_create_validation(self, authenticated_client, overrides):
        assert self._create(authenticated_client, **overrides).status_code == 400

    def test_update(self, authenticated_client):
        webhook_id = self._create(authenticated_client).get_json()['data']['id']
        response = authenticated_client.patch(f'/api/v1/webhooks/{webhook_id}', json={
            'events': ['payment.refunded', 'payment.refunded'],
            'is_active': False,
        })
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['events'] == ['payment.refunded']
        assert data['is_active'] is False

    def test_secret_cannot_be_set(self, authenticated_client):
        webhook_id = self._create(authenticated_client).get_json()['data']['id']
        response = authenticated_client.patch(f'/api/v1/webhooks/{webhook_id}', json={'secret': 'mine'})
        assert response.status_code == 400

    def test_delete(self, authenticated_client):
        webhook_id = self._create(authenticated_client).get_json()['data']['id']
        assert authenticated_client.delete(f'/api/v1/webhooks/{webhook_id}').status_code == 204
        assert authenticated_client.get(f'/api/v1/webhooks/{webhook_id}').status_code == 404

    def test_logs(self, authenticated_client, db_factory):
        webhook_id = self._create(authenticated_client).get_json()['data']['id']
        logs = WebhookLogRepository(db_factory)
        for status in ('success', 'failed'):
            logs.record({
                'id': logs.new_id(),
                'endpoint_id': webhook_id,
                'event_type': 'payment.completed',
                'status': status,
                'http_status': 200 if status == 'success' else 500,
                'duration_ms': 42,
                'created_at': isoformat(utcnow()),
            })

        data = authenticated_client.get('/api/v1/webhooks/logs').get_json()['data']
        assert len(data) == 2
        failed = authenticated_client.get('/api/v1/webhooks/logs?status=failed').get_json()['data']
        assert [log['http_status'] for log in failed] == [500]
        filtered = authenticated_client.get(f'/api/v1/webhooks/logs?endpoint_id={webhook_id}').get_json()['data']
        assert len(filtered) == 2
        assert authenticated_client.get('/api/v1/webhooks/logs?endpoint_id=bad').status_code == 400
        assert authenticated_client.get('/api/v1/webhooks/logs?status=pending').status_code == 400


def test_error_envelope_for_unknown_route(client):
    response = client.get('/api/v1/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['error']['code'] == 'NOT_FOUND'


def test_invalid_json_body(authenticated_client):
    response = authenticated_client.post('/api/v1/products', data='{not json', content_type='application/json')
    assert response.status_code == 400
    assert response.get_json()['error']['code'] == 'INVALID_INPUT'
