"""Tests for the Stripe and exchange rate HTTP integrations"""
import pytest
import requests

from gateflow.services.base import ExchangeRateError, PaymentProviderError
from gateflow.services.exchange_rates import (
    ExchangeRateApiProvider,
    ExchangeRateService,
    ManualRateProvider,
    create_exchange_rate_provider,
)
from gateflow.services.payment_provider import (
    DisabledPaymentProvider,
    StripePaymentProvider,
    create_payment_provider,
)


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError('no json')
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'HTTP {self.status_code}')


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def _call(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._call('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self._call('POST', url, **kwargs)

    def request(self, method, url, **kwargs):
        return self._call(method, url, **kwargs)


class TestStripeProvider:
    """Tests for refunds through Stripe"""

    def test_refund_request(self):
        session = FakeSession(FakeResponse(200, {'id': 're_9', 'amount': 500, 'currency': 'usd',
                                                 'status': 'succeeded'}))
        provider = StripePaymentProvider('sk_test_x', timeout=5, session=session)
        result = provider.create_refund('pi_1', amount=500, reason='duplicate', metadata={'transaction_id': 't1'})

        assert result.id == 're_9'
        assert result.amount == 500
        method, url, kwargs = session.calls[0]
        assert (method, url) == ('POST', 'https://api.stripe.com/v1/refunds')
        assert kwargs['data'] == {'payment_intent': 'pi_1', 'amount': 500, 'reason': 'duplicate',
                                  'metadata[transaction_id]': 't1'}
        assert kwargs['auth'] == ('sk_test_x', '')
        assert kwargs['timeout'] == 5

    def test_rejected_refund(self):
        session = FakeSession(FakeResponse(402, {'error': {'message': 'Charge already refunded'}}))
        provider = StripePaymentProvider('sk_test_x', session=session)
        with pytest.raises(PaymentProviderError, match='already refunded'):
            provider.create_refund('pi_1')

    def test_timeout(self):
        provider = StripePaymentProvider('sk_test_x', session=FakeSession(error=requests.Timeout('slow')))
        with pytest.raises(PaymentProviderError, match='timed out'):
            provider.create_refund('pi_1')

    def test_connection_error(self):
        provider = StripePaymentProvider('sk_test_x', session=FakeSession(error=requests.ConnectionError('down')))
        with pytest.raises(PaymentProviderError, match='unreachable'):
            provider.create_refund('pi_1')

    def test_factory(self):
        assert isinstance(create_payment_provider({'STRIPE_SECRET_KEY': None}), DisabledPaymentProvider)
        assert isinstance(create_payment_provider({'STRIPE_SECRET_KEY': 'sk_test_x'}), StripePaymentProvider)

    def test_disabled_provider(self):
        with pytest.raises(PaymentProviderError):
            DisabledPaymentProvider().create_refund('pi_1')


class TestExchangeRates:
    """Tests for exchange rate providers and caching"""

    def test_manual_rates_rebased(self):
        rates = ManualRateProvider({'USD': 1.0, 'EUR': 0.5}).get_rates('EUR')
        assert rates == {'USD': 2.0, 'EUR': 1.0}

    def test_manual_unknown_base(self):
        with pytest.raises(ExchangeRateError):
            ManualRateProvider().get_rates('XYZ')

    def test_api_provider(self):
        session = FakeSession(FakeResponse(200, {'result': 'success', 'conversion_rates': {'USD': 1, 'EUR': 0.9}}))
        rates = ExchangeRateApiProvider('k', session=session).get_rates('USD')
        assert rates == {'USD': 1.0, 'EUR': 0.9}
        assert session.calls[0][1] == 'https://v6.exchangerate-api.com/v6/k/latest/USD'

    def test_api_provider_error(self):
        session = FakeSession(FakeResponse(500, {}))
        with pytest.raises(ExchangeRateError, match='HTTP 500'):
            ExchangeRateApiProvider('k', session=session).get_rates('USD')

    @pytest.mark.parametrize('error', [
        requests.ConnectionError('Max retries exceeded with url: /v6/secret-rate-key/latest/USD'),
        requests.Timeout('https://v6.exchangerate-api.com/v6/secret-rate-key/latest/USD timed out'),
    ])
    def test_api_provider_errors_hide_api_key(self, error, caplog):
        session = FakeSession(error=error)
        with pytest.raises(ExchangeRateError) as excinfo:
            ExchangeRateApiProvider('secret-rate-key', session=session).get_rates('USD')
        assert 'secret-rate-key' not in excinfo.value.message
        assert 'secret-rate-key' not in str(excinfo.value)
        assert excinfo.value.__cause__ is None
        assert 'secret-rate-key' not in caplog.text

    def test_api_provider_invalid_json(self):
        session = FakeSession(FakeResponse(200, None))
        with pytest.raises(ExchangeRateError, match='invalid JSON'):
            ExchangeRateApiProvider('k', session=session).get_rates('USD')

    def test_api_provider_unexpected_body(self):
        session = FakeSession(FakeResponse(200, {'result': 'error'}))
        with pytest.raises(ExchangeRateError):
            ExchangeRateApiProvider('k', session=session).get_rates('USD')

    def test_service_caches_rates(self):
        session = FakeSession(FakeResponse(200, {'result': 'success', 'conversion_rates': {'USD': 1, 'EUR': 0.5}}))
        service = ExchangeRateService(ExchangeRateApiProvider('k', session=session), ttl_seconds=60)
        assert service.convert_totals({'USD': 100, 'EUR': 100}, 'USD') == 300
        service.get_rates('USD')
        assert len(session.calls) == 1
        service.clear()
        service.get_rates('USD')
        assert len(session.calls) == 2

    def test_missing_rate(self):
        service = ExchangeRateService(ManualRateProvider({'USD': 1.0}))
        with pytest.raises(ExchangeRateError):
            service.convert_totals({'JPY': 100}, 'USD')

    def test_factory_falls_back_to_manual(self):
        provider = create_exchange_rate_provider({'EXCHANGE_RATE_PROVIDER': 'exchangerate-api'})
        assert isinstance(provider, ManualRateProvider)
        provider = create_exchange_rate_provider({'EXCHANGE_RATE_PROVIDER': 'exchangerate-api',
                                                  'EXCHANGE_RATE_API_KEY': 'k'})
        assert isinstance(provider, ExchangeRateApiProvider)
