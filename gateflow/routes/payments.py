from __future__ import annotations

from flask import Blueprint, g, request

from gateflow.services.payment_service import PAYMENT_SORT_FIELDS
from gateflow.utils import scopes
from gateflow.utils.http import json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_payments_blueprint(*, payment_service, guard, logger):
    """Create payment routes."""
    blueprint = Blueprint('payments', __name__, url_prefix='/api/v1/payments')

    @blueprint.route('', methods=['GET'])
    @guard.require_scopes(scopes.ANALYTICS_READ)
    def list_payments():
        page_request = PageRequest.from_args(request.args, PAYMENT_SORT_FIELDS)
        return page(payment_service.list(page_request, request.args))

    @blueprint.route('/<payment_id>/refund', methods=['POST'])
    @guard.require_scopes(scopes.WILDCARD)
    def refund_payment(payment_id: str):
        """Refund a payment. Requires full access."""
        require_id(payment_id, 'payment')
        result = payment_service.refund(payment_id, json_body(required=False), g.auth.admin_user_id)
        logger.info(f"Refund issued for payment {payment_id} via {g.auth.method}")
        return ok(result)

    return blueprint
