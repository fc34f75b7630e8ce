"""Tests for payments, direct refunds and refund request processing"""
import uuid

import pytest

from gateflow.repositories import (
    CustomerRepository,
    PaymentRepository,
    ProductAccessRepository,
    ProductRepository,
    RefundRequestRepository,
)
from gateflow.utils.timeutil import isoformat, utcnow


@pytest.fixture
def shop(db_factory):
    """A product, a customer with access to it and one completed payment."""
    now = isoformat(utcnow())
    products = ProductRepository(db_factory)
    product = products.create({
        'id': products.new_id(),
        'name': 'Course',
        'slug': 'course',
        'price': 10000,
        'currency': 'USD',
        'created_at': now,
        'updated_at': now,
    })
    customers = CustomerRepository(db_factory)
    customer = customers.create(customers.new_id(), 'buyer@example.com', now)
    access = ProductAccessRepository(db_factory)
    access.grant(customer.id, product.id, now)

    payments = PaymentRepository(db_factory)

    def add_payment(status='completed', amount=10000, intent='pi_123', currency='USD', email='buyer@example.com'):
        return payments.create({
            'id': payments.new_id(),
            'product_id': product.id,
            'user_id': customer.id,
            'customer_email': email,
            'amount': amount,
            'currency': currency,
            'status': status,
            'stripe_payment_intent_id': intent,
            'created_at': isoformat(utcnow()),
            'updated_at': isoformat(utcnow()),
        })

    return {
        'product': product,
        'customer': customer,
        'payment': add_payment(),
        'add_payment': add_payment,
        'payments': payments,
        'access': access,
    }


class TestPaymentListing:
    """Tests for GET /api/v1/payments"""

    def test_list(self, authenticated_client, shop):
        data = authenticated_client.get('/api/v1/payments').get_json()['data']
        assert [p['id'] for p in data] == [shop['payment'].id]

    def test_filters(self, authenticated_client, shop):
        shop['add_payment'](status='pending', email='other@example.com')
        assert len(authenticated_client.get('/api/v1/payments?status=pending').get_json()['data']) == 1
        assert len(authenticated_client.get('/api/v1/payments?email=OTHER').get_json()['data']) == 1
        product_id = shop['product'].id
        assert len(authenticated_client.get(f'/api/v1/payments?product_id={product_id}').get_json()['data']) == 2
        assert authenticated_client.get('/api/v1/payments?date_from=2000-01-01').get_json()['data']
        assert authenticated_client.get('/api/v1/payments?date_to=2000-01-01').get_json()['data'] == []

    @pytest.mark.parametrize('query', ['status=lost', 'product_id=abc', 'date_from=yesterday'])
    def test_invalid_filters(self, authenticated_client, shop, query):
        assert authenticated_client.get(f'/api/v1/payments?{query}').status_code == 400

    def test_sort_by_amount(self, authenticated_client, shop):
        shop['add_payment'](amount=500)
        amounts = [p['amount'] for p in authenticated_client.get('/api/v1/payments?sort=amount').get_json()['data']]
        assert amounts == [500, 10000]


class TestDirectRefund:
    """Tests for POST /api/v1/payments/<id>/refund"""

    def test_full_refund(self, authenticated_client, shop, payment_provider):
        payment = shop['payment']
        response = authenticated_client.post(f'/api/v1/payments/{payment.id}/refund',
                                             json={'reason': 'requested_by_customer'})
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['payment_status'] == 'refunded'
        assert data['total_refunded'] == 10000
        assert payment_provider.calls[0]['payment_intent_id'] == 'pi_123'
        assert payment_provider.calls[0]['amount'] is None

        stored = shop['payments'].get(payment.id)
        assert stored.status == 'refunded'
        assert stored.refund_id == data['refund']['id']
        assert stored.refunded_by is not None
        assert not shop['access'].has_access(shop['customer'].id, shop['product'].id)

    def test_partial_refund(self, authenticated_client, shop):
        payment = shop['payment']
        response = authenticated_client.post(f'/api/v1/payments/{payment.id}/refund', json={'amount': 2500})
        assert response.status_code == 200
        assert response.get_json()['data']['payment_status'] == 'partially_refunded'
        assert shop['payments'].get(payment.id).refunded_amount == 2500

    def test_refund_exceeding_amount(self, authenticated_client, shop, payment_provider):
        payment = shop['payment']
        response = authenticated_client.post(f'/api/v1/payments/{payment.id}/refund', json={'amount': 10001})
        assert response.status_code == 400
        assert payment_provider.calls == []

    def test_only_completed_payments(self, authenticated_client, shop):
        pending = shop['add_payment'](status='pending')
        response = authenticated_client.post(f'/api/v1/payments/{pending.id}/refund', json={})
        assert response.status_code == 400

    def test_requires_payment_intent(self, authenticated_client, shop):
        payment = shop['add_payment'](intent=None)
        response = authenticated_client.post(f'/api/v1/payments/{payment.id}/refund', json={})
        assert response.status_code == 400

    @pytest.mark.parametrize('payload', [{'reason': 'changed_mind'}, {'amount': 0}, {'status': 'refunded'}])
    def test_validation(self, authenticated_client, shop, payload):
        response = authenticated_client.post(f"/api/v1/payments/{shop['payment'].id}/refund", json=payload)
        assert response.status_code == 400

    def test_missing_payment(self, authenticated_client):
        response = authenticated_client.post(f'/api/v1/payments/{uuid.uuid4()}/refund', json={})
        assert response.status_code == 404

    def test_provider_failure(self, authenticated_client, shop, payment_provider):
        payment_provider.fail = True
        response = authenticated_client.post(f"/api/v1/payments/{shop['payment'].id}/refund", json={})
        assert response.status_code == 500
        assert response.get_json()['error']['code'] == 'INTERNAL_ERROR'
        assert shop['payments'].get(shop['payment'].id).status == 'completed'
        assert shop['access'].has_access(shop['customer'].id, shop['product'].id)


@pytest.fixture
def refund_request(db_factory, shop):
    requests = RefundRequestRepository(db_factory)
    now = isoformat(utcnow())
    return requests.create({
        'id': requests.new_id(),
        'transaction_id': shop['payment'].id,
        'product_id': shop['product'].id,
        'user_id': shop['customer'].id,
        'customer_email': 'buyer@example.com',
        'requested_amount': 10000,
        'currency': 'USD',
        'reason': 'Not what I expected',
        'status': 'pending',
        'created_at': now,
        'updated_at': now,
    })


class TestRefundRequests:
    """Tests for /api/v1/refund-requests"""

    def test_list_and_get(self, authenticated_client, refund_request):
        listed = authenticated_client.get('/api/v1/refund-requests?status=pending').get_json()['data']
        assert [r['id'] for r in listed] == [refund_request.id]
        fetched = authenticated_client.get(f'/api/v1/refund-requests/{refund_request.id}').get_json()['data']
        assert fetched['reason'] == 'Not what I expected'
        assert authenticated_client.get('/api/v1/refund-requests?status=lost').status_code == 400

    def test_approve(self, authenticated_client, refund_request, shop, payment_provider, admin_user):
        response = authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}', json={
            'action': 'approve',
            'admin_response': 'Refunded in full',
        })
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['status'] == 'approved'
        assert data['admin_id'] == admin_user.id
        assert data['processed_at'] is not None

        assert payment_provider.calls[0]['amount'] == 10000
        assert payment_provider.calls[0]['metadata']['refund_request_id'] == refund_request.id
        payment = shop['payments'].get(shop['payment'].id)
        assert payment.status == 'refunded'
        assert not shop['access'].has_access(shop['customer'].id, shop['product'].id)

    def test_reject_does_not_refund(self, authenticated_client, refund_request, payment_provider):
        response = authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}',
                                              json={'action': 'reject'})
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'rejected'
        assert payment_provider.calls == []

    def test_already_processed(self, authenticated_client, refund_request):
        authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}', json={'action': 'reject'})
        response = authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}',
                                              json={'action': 'approve'})
        assert response.status_code == 400
        assert 'pending' in response.get_json()['error']['message']

    def test_provider_failure_reverts_to_pending(self, authenticated_client, refund_request, payment_provider):
        payment_provider.fail = True
        response = authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}',
                                              json={'action': 'approve', 'admin_response': 'ok'})
        assert response.status_code == 500
        assert 'reverted to pending' in response.get_json()['error']['message']

        data = authenticated_client.get(f'/api/v1/refund-requests/{refund_request.id}').get_json()['data']
        assert data['status'] == 'pending'
        assert data['admin_id'] is None
        assert data['admin_response'] is None

    def test_approve_after_direct_refund(self, authenticated_client, refund_request, shop, payment_provider):
        authenticated_client.post(f"/api/v1/payments/{shop['payment'].id}/refund", json={})
        response = authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}',
                                              json={'action': 'approve'})
        assert response.status_code == 400
        assert 'Only completed payments' in response.get_json()['error']['message']
        assert len(payment_provider.calls) == 1
        data = authenticated_client.get(f'/api/v1/refund-requests/{refund_request.id}').get_json()['data']
        assert data['status'] == 'pending'

    @pytest.mark.parametrize('payload', [{'action': 'escalate'}, {'action': 'approve', 'status': 'approved'}, {}])
    def test_validation(self, authenticated_client, refund_request, payload):
        response = authenticated_client.patch(f'/api/v1/refund-requests/{refund_request.id}', json=payload)
        assert response.status_code == 400

    def test_support_key_can_process(self, api_client, refund_request):
        client = api_client(scopes=['refund-requests:write'])
        response = client.patch(f'/api/v1/refund-requests/{refund_request.id}', json={'action': 'reject'})
        assert response.status_code == 200
