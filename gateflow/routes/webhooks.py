from __future__ import annotations

from flask import Blueprint, request

from gateflow.services.webhook_service import WEBHOOK_LOG_SORT_FIELDS, WEBHOOK_SORT_FIELDS
from gateflow.utils import scopes
from gateflow.utils.http import json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_webhooks_blueprint(*, webhook_service, guard, logger):
    """Create webhook endpoint configuration routes."""
    blueprint = Blueprint('webhooks', __name__, url_prefix='/api/v1/webhooks')

    @blueprint.route('', methods=['GET'])
    @guard.require_scopes(scopes.WEBHOOKS_READ)
    def list_webhooks():
        page_request = PageRequest.from_args(request.args, WEBHOOK_SORT_FIELDS)
        return page(webhook_service.list(page_request))

    @blueprint.route('', methods=['POST'])
    @guard.require_scopes(scopes.WEBHOOKS_WRITE)
    def create_webhook():
        return ok(webhook_service.create(json_body()), 201)

    @blueprint.route('/logs', methods=['GET'])
    @guard.require_scopes(scopes.WEBHOOKS_READ)
    def list_webhook_logs():
        page_request = PageRequest.from_args(request.args, WEBHOOK_LOG_SORT_FIELDS)
        return page(webhook_service.list_logs(
            page_request,
            endpoint_id=request.args.get('endpoint_id'),
            status=request.args.get('status'),
        ))

    @blueprint.route('/<webhook_id>', methods=['GET'])
    @guard.require_scopes(scopes.WEBHOOKS_READ)
    def get_webhook(webhook_id: str):
        require_id(webhook_id, 'webhook')
        return ok(webhook_service.get(webhook_id).to_dict())

    @blueprint.route('/<webhook_id>', methods=['PATCH'])
    @guard.require_scopes(scopes.WEBHOOKS_WRITE)
    def update_webhook(webhook_id: str):
        require_id(webhook_id, 'webhook')
        return ok(webhook_service.update(webhook_id, json_body()).to_dict())

    @blueprint.route('/<webhook_id>', methods=['DELETE'])
    @guard.require_scopes(scopes.WEBHOOKS_WRITE)
    def delete_webhook(webhook_id: str):
        require_id(webhook_id, 'webhook')
        webhook_service.delete(webhook_id)
        return '', 204

    return blueprint
