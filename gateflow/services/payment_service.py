from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from gateflow.repositories import PaymentRepository, ProductAccessRepository
from gateflow.services.base import InternalError, NotFoundError, ValidationError
from gateflow.services.payment_provider import REFUND_REASONS, PaymentProvider
from gateflow.utils import validators
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.timeutil import isoformat, normalize_timestamp, utcnow

logger = logging.getLogger(__name__)

PAYMENT_SORT_FIELDS = {'created_at': str, 'amount': int, 'customer_email': str}
PAYMENT_STATUSES = ('pending', 'completed', 'partially_refunded', 'refunded')


class PaymentService:
    """Payment listing and direct refunds."""

    def __init__(self, payment_repo: PaymentRepository, access_repo: ProductAccessRepository,
                 payment_provider: PaymentProvider):
        self._payments = payment_repo
        self._access = access_repo
        self._provider = payment_provider

    def list(self, page: PageRequest, args) -> Dict[str, Any]:
        filters: Dict[str, Any] = {}
        status = args.get('status')
        if status:
            if status not in PAYMENT_STATUSES:
                raise ValidationError(f"Invalid status. Allowed: {', '.join(PAYMENT_STATUSES)}")
            filters['status'] = status
        product_id = args.get('product_id')
        if product_id:
            valid, _ = validators.validate_uuid(product_id)
            if not valid:
                raise ValidationError('Invalid product_id format')
            filters['product_id'] = product_id
        if args.get('email'):
            filters['email'] = validators.sanitize_string(args.get('email'), max_length=255)
        for bound in ('date_from', 'date_to'):
            if args.get(bound):
                try:
                    filters[bound] = normalize_timestamp(args.get(bound))
                except ValueError:
                    raise ValidationError(f'{bound} must be an ISO-8601 timestamp')
        transactions = self._payments.list(page.sort, page.cursor, page.limit, filters)
        return build_page(transactions, page.limit, page.sort, page.cursor_token)

    def refund(self, transaction_id: str, data: Dict[str, Any], admin_user_id: str) -> Dict[str, Any]:
        """Refund a completed payment fully or partially through the provider."""
        unknown = sorted(set(data) - {'amount', 'reason'})
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}", details={'unknown_fields': unknown})
        reason: Optional[str] = data.get('reason')
        if reason is not None and reason not in REFUND_REASONS:
            raise ValidationError(f"Invalid reason. Allowed: {', '.join(REFUND_REASONS)}")

        payment = self._payments.get(transaction_id)
        if payment is None:
            raise NotFoundError('Payment not found')
        if payment.status != 'completed':
            raise ValidationError('Only completed payments can be refunded')
        if not payment.stripe_payment_intent_id:
            raise ValidationError('Payment does not have a Stripe payment intent')

        amount = data.get('amount')
        refund_amount = payment.amount if amount is None else amount
        valid, error = validators.validate_amount(refund_amount, 'Refund amount', allow_zero=False)
        if not valid:
            raise ValidationError(error)
        if refund_amount > payment.refundable_amount:
            raise ValidationError(
                f'Refund amount ({refund_amount}) exceeds refundable amount ({payment.refundable_amount})'
            )

        refund = self._provider.create_refund(
            payment.stripe_payment_intent_id,
            amount=refund_amount if amount is not None else None,
            reason=reason,
            metadata={'transaction_id': payment.id, 'refunded_by': admin_user_id},
        )

        total_refunded = payment.refunded_amount + (refund.amount or refund_amount)
        new_status = 'refunded' if total_refunded >= payment.amount else 'partially_refunded'
        now = isoformat(utcnow())
        applied = self._payments.apply_refund(payment.id, {
            'status': new_status,
            'refund_id': refund.id,
            'refunded_amount': total_refunded,
            'refunded_at': now,
            'refunded_by': admin_user_id,
            'refund_reason': reason,
            'updated_at': now,
        }, expected_status='completed')
        if not applied:
            logger.error(f"Refund {refund.id} issued but payment {payment.id} changed concurrently")
            raise InternalError('Refund processed but failed to update database. Please contact support.')

        if payment.user_id:
            self._access.revoke(payment.user_id, payment.product_id)
        logger.info(f"Payment {payment.id} refunded {refund.amount} by admin {admin_user_id}")

        return {
            'payment_id': payment.id,
            'refund': {
                'id': refund.id,
                'amount': refund.amount,
                'currency': refund.currency,
                'status': refund.status,
                'reason': refund.reason,
            },
            'payment_status': new_status,
            'total_refunded': total_refunded,
            'created_at': now,
        }
