from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from gateflow.models import RefundRequest
from gateflow.repositories import PaymentRepository, ProductAccessRepository, RefundRequestRepository
from gateflow.services.base import InternalError, NotFoundError, PaymentProviderError, ValidationError
from gateflow.services.payment_provider import PaymentProvider
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

REFUND_REQUEST_SORT_FIELDS = {'created_at': str, 'updated_at': str, 'requested_amount': int}
REFUND_REQUEST_STATUSES = ('pending', 'approved', 'rejected')
REFUND_ACTIONS = {'approve': 'approved', 'reject': 'rejected'}
MAX_ADMIN_RESPONSE_LENGTH = 2000


class RefundRequestService:
    """Review of customer refund requests."""

    def __init__(
        self,
        refund_repo: RefundRequestRepository,
        payment_repo: PaymentRepository,
        access_repo: ProductAccessRepository,
        payment_provider: PaymentProvider,
    ):
        self._requests = refund_repo
        self._payments = payment_repo
        self._access = access_repo
        self._provider = payment_provider

    def list(self, page: PageRequest, status: Optional[str] = None) -> Dict[str, Any]:
        if status and status not in REFUND_REQUEST_STATUSES:
            raise ValidationError(f"Invalid status. Allowed: {', '.join(REFUND_REQUEST_STATUSES)}")
        found = self._requests.list(page.sort, page.cursor, page.limit, status=status or None)
        return build_page(found, page.limit, page.sort, page.cursor_token)

    def get(self, request_id: str) -> RefundRequest:
        refund_request = self._requests.get(request_id)
        if refund_request is None:
            raise NotFoundError('Refund request not found')
        return refund_request

    def process(self, request_id: str, data: Dict[str, Any], admin_user_id: str) -> RefundRequest:
        unknown = sorted(set(data) - {'action', 'admin_response'})
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}", details={'unknown_fields': unknown})
        action = data.get('action')
        if action not in REFUND_ACTIONS:
            raise ValidationError('Action must be approve or reject')
        admin_response = data.get('admin_response')
        if admin_response is not None and (
            not isinstance(admin_response, str) or len(admin_response) > MAX_ADMIN_RESPONSE_LENGTH
        ):
            raise ValidationError(f'admin_response must be a string of at most {MAX_ADMIN_RESPONSE_LENGTH} characters')

        refund_request = self.get(request_id)
        if refund_request.status != 'pending':
            raise ValidationError(f'Only pending requests can be processed (current status: {refund_request.status})')

        now = isoformat(utcnow())
        claimed = self._requests.transition(request_id, 'pending', {
            'status': REFUND_ACTIONS[action],
            'admin_id': admin_user_id,
            'admin_response': admin_response,
            'processed_at': now,
            'updated_at': now,
        })
        if not claimed:
            raise ValidationError('Only pending requests can be processed')

        if action == 'approve':
            self._issue_refund(refund_request, admin_user_id)
        logger.info(f"Refund request {request_id} {REFUND_ACTIONS[action]} by admin {admin_user_id}")
        return self.get(request_id)

    def _issue_refund(self, refund_request: RefundRequest, admin_user_id: str) -> None:
        transaction = self._payments.get(refund_request.transaction_id)
        if transaction is None or not transaction.stripe_payment_intent_id:
            return
        if transaction.status != 'completed':
            self._revert_to_pending(refund_request.id)
            raise ValidationError(
                f'Only completed payments can be refunded (current status: {transaction.status}). '
                'Request has been reverted to pending.'
            )

        try:
            refund = self._provider.create_refund(
                transaction.stripe_payment_intent_id,
                amount=refund_request.requested_amount,
                reason='requested_by_customer',
                metadata={
                    'refund_request_id': refund_request.id,
                    'transaction_id': transaction.id,
                    'processed_by': admin_user_id,
                },
            )
        except PaymentProviderError as exc:
            logger.error(f"Refund for request {refund_request.id} failed, reverting to pending: {exc.message}")
            self._revert_to_pending(refund_request.id)
            raise InternalError('Failed to process refund with Stripe. Request has been reverted to pending.') from exc

        now = isoformat(utcnow())
        total_refunded = transaction.refunded_amount + refund_request.requested_amount
        applied = self._payments.apply_refund(transaction.id, {
            'status': 'refunded' if total_refunded >= transaction.amount else 'partially_refunded',
            'refund_id': refund.id,
            'refunded_amount': total_refunded,
            'refunded_at': now,
            'refunded_by': admin_user_id,
            'refund_reason': 'requested_by_customer',
            'updated_at': now,
        }, expected_status='completed')
        if not applied:
            logger.error(f"Refund {refund.id} issued for request {refund_request.id} "
                         f"but payment {transaction.id} changed concurrently")
            raise InternalError('Refund processed but failed to update database. Please contact support.')
        if refund_request.user_id:
            self._access.revoke(refund_request.user_id, refund_request.product_id)

    def _revert_to_pending(self, request_id: str) -> None:
        self._requests.transition(request_id, 'approved', {
            'status': 'pending',
            'admin_id': None,
            'admin_response': None,
            'processed_at': None,
            'updated_at': isoformat(utcnow()),
        })
