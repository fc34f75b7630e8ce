from __future__ import annotations

from flask import Blueprint, g, request

from gateflow.services.refund_request_service import REFUND_REQUEST_SORT_FIELDS
from gateflow.utils import scopes
from gateflow.utils.http import json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_refund_requests_blueprint(*, refund_request_service, guard, logger):
    """Create refund request routes."""
    blueprint = Blueprint('refund_requests', __name__, url_prefix='/api/v1/refund-requests')

    @blueprint.route('', methods=['GET'])
    @guard.require_scopes(scopes.REFUND_REQUESTS_READ)
    def list_refund_requests():
        page_request = PageRequest.from_args(request.args, REFUND_REQUEST_SORT_FIELDS)
        return page(refund_request_service.list(page_request, status=request.args.get('status')))

    @blueprint.route('/<request_id>', methods=['GET'])
    @guard.require_scopes(scopes.REFUND_REQUESTS_READ)
    def get_refund_request(request_id: str):
        require_id(request_id, 'refund request')
        return ok(refund_request_service.get(request_id).to_dict())

    @blueprint.route('/<request_id>', methods=['PATCH'])
    @guard.require_scopes(scopes.REFUND_REQUESTS_WRITE)
    def process_refund_request(request_id: str):
        """Approve or reject a pending refund request."""
        require_id(request_id, 'refund request')
        refund_request = refund_request_service.process(request_id, json_body(), g.auth.admin_user_id)
        return ok(refund_request.to_dict())

    return blueprint
