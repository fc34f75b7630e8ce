from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from gateflow.services.base import PaymentProviderError

logger = logging.getLogger(__name__)

REFUND_REASONS = ('duplicate', 'fraudulent', 'requested_by_customer')


@dataclass(frozen=True)
class RefundResult:
    id: str
    amount: int
    currency: Optional[str]
    status: str
    reason: Optional[str] = None


class PaymentProvider:
    """Interface for the payment processor used to issue refunds."""
    name = 'none'

    def create_refund(
        self,
        payment_intent_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> RefundResult:
        raise NotImplementedError


class DisabledPaymentProvider(PaymentProvider):
    """Used when no payment credentials are configured."""
    name = 'disabled'

    def create_refund(self, payment_intent_id, amount=None, reason=None, metadata=None) -> RefundResult:
        raise PaymentProviderError('Payment provider is not configured')


class StripePaymentProvider(PaymentProvider):
    """Refunds through the Stripe REST API."""
    name = 'stripe'

    def __init__(
        self,
        secret_key: str,
        api_base: str = 'https://api.stripe.com',
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self._secret_key = secret_key
        self._api_base = api_base.rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()

    def create_refund(self, payment_intent_id, amount=None, reason=None, metadata=None) -> RefundResult:
        payload: Dict[str, object] = {'payment_intent': payment_intent_id}
        if amount is not None:
            payload['amount'] = amount
        if reason:
            payload['reason'] = reason
        for key, value in (metadata or {}).items():
            payload[f'metadata[{key}]'] = value

        try:
            response = self._session.post(
                f'{self._api_base}/v1/refunds',
                data=payload,
                auth=(self._secret_key, ''),
                timeout=self._timeout,
            )
        except requests.Timeout as exc:
            logger.error(f"Stripe refund timed out for {payment_intent_id}: {exc}")
            raise PaymentProviderError('Payment provider timed out') from exc
        except requests.RequestException as exc:
            logger.error(f"Stripe refund request failed for {payment_intent_id}: {exc}")
            raise PaymentProviderError('Payment provider is unreachable') from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = (body.get('error') or {}).get('message') or f'HTTP {response.status_code}'
            logger.error(f"Stripe rejected refund for {payment_intent_id}: {message}")
            raise PaymentProviderError(f'Payment provider rejected the refund: {message}')

        return RefundResult(
            id=body.get('id', ''),
            amount=body.get('amount', amount or 0),
            currency=body.get('currency'),
            status=body.get('status', 'pending'),
            reason=body.get('reason'),
        )


def create_payment_provider(config) -> PaymentProvider:
    secret_key = config.get('STRIPE_SECRET_KEY')
    if not secret_key:
        logger.warning("STRIPE_SECRET_KEY not set; refunds are disabled")
        return DisabledPaymentProvider()
    return StripePaymentProvider(
        secret_key,
        api_base=config.get('STRIPE_API_BASE', 'https://api.stripe.com'),
        timeout=config.get('OUTBOUND_TIMEOUT_SECONDS', 10),
    )
