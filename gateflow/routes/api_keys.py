from __future__ import annotations

from flask import Blueprint, g, request

from gateflow.services.api_key_service import KEY_SORT_FIELDS, SECRET_WARNING
from gateflow.utils.http import client_ip, json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_api_keys_blueprint(*, api_key_service, guard, logger):
    """Create API key management routes. Session-authenticated admins only."""
    blueprint = Blueprint('api_keys', __name__, url_prefix='/api/v1/api-keys')

    @blueprint.route('', methods=['GET'])
    @guard.session_required
    def list_api_keys():
        """List the caller's API keys (never includes secrets)."""
        page_request = PageRequest.from_args(request.args, KEY_SORT_FIELDS)
        status = request.args.get('status', 'all')
        return page(api_key_service.list_keys(g.auth.admin_user_id, page_request, status))

    @blueprint.route('', methods=['POST'])
    @guard.session_required
    def create_api_key():
        """Create a new API key; the plaintext is returned only here."""
        data = json_body()
        key, plaintext = api_key_service.issue(
            g.auth.admin_user_id,
            data.get('name'),
            scopes=data.get('scopes'),
            rate_limit_per_minute=data.get('rate_limit_per_minute'),
            expires_at=data.get('expires_at'),
            ip_address=client_ip(),
        )
        payload = key.to_dict()
        payload['key'] = plaintext
        payload['warning'] = SECRET_WARNING
        return ok(payload, 201)

    @blueprint.route('/<key_id>', methods=['GET'])
    @guard.session_required
    def get_api_key(key_id: str):
        require_id(key_id, 'API key')
        return ok(api_key_service.get(g.auth.admin_user_id, key_id).to_dict())

    @blueprint.route('/<key_id>', methods=['PATCH'])
    @guard.session_required
    def update_api_key(key_id: str):
        require_id(key_id, 'API key')
        key = api_key_service.update(g.auth.admin_user_id, key_id, json_body())
        return ok(key.to_dict())

    @blueprint.route('/<key_id>', methods=['DELETE'])
    @guard.session_required
    def revoke_api_key(key_id: str):
        """Revoke a key. The row is kept for auditing."""
        require_id(key_id, 'API key')
        data = json_body(required=False)
        reason = request.args.get('reason', data.get('reason'))
        key = api_key_service.revoke(g.auth.admin_user_id, key_id, reason, ip_address=client_ip())
        return ok({
            'id': key.id,
            'is_active': key.is_active,
            'revoked_at': key.revoked_at,
            'revoked_reason': key.revoked_reason,
            'message': 'API key has been revoked',
        })

    @blueprint.route('/<key_id>/rotate', methods=['POST'])
    @guard.session_required
    def rotate_api_key(key_id: str):
        """Issue a replacement key; the old one stays valid for the grace period."""
        require_id(key_id, 'API key')
        data = json_body(required=False)
        result = api_key_service.rotate(
            g.auth.admin_user_id,
            key_id,
            grace_period_hours=data.get('grace_period_hours'),
            ip_address=client_ip(),
        )
        return ok(result, 201)

    @blueprint.route('/<key_id>/audit-log', methods=['GET'])
    @guard.session_required
    def api_key_audit_log(key_id: str):
        require_id(key_id, 'API key')
        events = api_key_service.audit_log(g.auth.admin_user_id, key_id)
        return ok([event.to_dict() for event in events])

    return blueprint
