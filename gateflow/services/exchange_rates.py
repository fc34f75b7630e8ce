from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

import requests

from gateflow.services.base import ExchangeRateError

logger = logging.getLogger(__name__)

# Approximate rates relative to USD, used when no live provider is configured
MANUAL_USD_RATES = {
    'USD': 1.0,
    'EUR': 0.92,
    'GBP': 0.79,
    'PLN': 4.02,
    'CHF': 0.88,
    'CAD': 1.36,
    'AUD': 1.52,
    'JPY': 149.5,
    'SEK': 10.4,
    'NOK': 10.6,
    'DKK': 6.86,
    'CZK': 23.1,
}


class ExchangeRateProvider:
    """Interface: rates such that ``amount_in_base * rate == amount_in_currency``."""
    name = 'none'

    def get_rates(self, base: str) -> Dict[str, float]:
        raise NotImplementedError


class ManualRateProvider(ExchangeRateProvider):
    name = 'manual'

    def __init__(self, usd_rates: Optional[Dict[str, float]] = None):
        self._usd_rates = dict(usd_rates or MANUAL_USD_RATES)

    def get_rates(self, base: str) -> Dict[str, float]:
        base_rate = self._usd_rates.get(base)
        if not base_rate:
            raise ExchangeRateError(f'No manual rate for {base}')
        return {currency: rate / base_rate for currency, rate in self._usd_rates.items()}


class ExchangeRateApiProvider(ExchangeRateProvider):
    """exchangerate-api.com v6."""
    name = 'exchangerate-api'

    def __init__(self, api_key: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def get_rates(self, base: str) -> Dict[str, float]:
        url = f'https://v6.exchangerate-api.com/v6/{self._api_key}/latest/{base}'
        # The key is part of the URL, so request errors are reported by type and status only
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning(f"Exchange rate request for {base} failed: {type(exc).__name__}")
            raise ExchangeRateError(f'Failed to fetch exchange rates: {type(exc).__name__}') from None
        if response.status_code >= 400:
            logger.warning(f"Exchange rate provider returned HTTP {response.status_code} for {base}")
            raise ExchangeRateError(f'Failed to fetch exchange rates: HTTP {response.status_code}')
        try:
            body = response.json()
        except ValueError:
            raise ExchangeRateError('Exchange rate provider returned invalid JSON') from None
        if not isinstance(body, dict):
            raise ExchangeRateError('Exchange rate provider returned an unexpected response')
        rates = body.get('conversion_rates')
        if body.get('result') != 'success' or not isinstance(rates, dict):
            raise ExchangeRateError('Exchange rate provider returned an unexpected response')
        return {currency: float(rate) for currency, rate in rates.items()}


class ExchangeRateService:
    """Caches provider rates per base currency and converts amounts."""

    def __init__(self, provider: ExchangeRateProvider, ttl_seconds: int = 3600):
        self._provider = provider
        self._ttl_seconds = ttl_seconds
        self._cache: Dict[str, Dict[str, object]] = {}
        self._lock = threading.RLock()

    @property
    def provider_name(self) -> str:
        return self._provider.name

    def get_rates(self, base: str) -> Dict[str, float]:
        with self._lock:
            entry = self._cache.get(base)
            if entry and time.time() - entry['timestamp'] <= self._ttl_seconds:
                return entry['data']
        rates = self._provider.get_rates(base)
        with self._lock:
            self._cache[base] = {'timestamp': time.time(), 'data': rates}
        return rates

    def convert_totals(self, totals: Dict[str, int], target: str) -> int:
        """Sum per-currency amounts (minor units) into ``target``."""
        rates = self.get_rates(target)
        converted = 0.0
        for currency, amount in totals.items():
            rate = rates.get(currency)
            if not rate:
                raise ExchangeRateError(f'No exchange rate for {currency}')
            converted += amount / rate
        return int(round(converted))

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


def create_exchange_rate_provider(config) -> ExchangeRateProvider:
    provider = config.get('EXCHANGE_RATE_PROVIDER', 'manual')
    if provider == 'exchangerate-api':
        api_key = config.get('EXCHANGE_RATE_API_KEY')
        if api_key:
            return ExchangeRateApiProvider(api_key, timeout=config.get('OUTBOUND_TIMEOUT_SECONDS', 10))
        logger.warning("EXCHANGE_RATE_API_KEY not set; falling back to manual exchange rates")
    elif provider != 'manual':
        logger.warning(f"Unknown EXCHANGE_RATE_PROVIDER '{provider}'; using manual exchange rates")
    return ManualRateProvider()
