from __future__ import annotations

from flask import Blueprint, request

from gateflow.services.customer_service import CUSTOMER_SORT_FIELDS
from gateflow.utils import scopes
from gateflow.utils.http import json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_users_blueprint(*, customer_service, guard, logger):
    """Create customer and product access routes."""
    blueprint = Blueprint('users', __name__, url_prefix='/api/v1/users')

    @blueprint.route('', methods=['GET'])
    @guard.require_scopes(scopes.USERS_READ)
    def list_users():
        page_request = PageRequest.from_args(request.args, CUSTOMER_SORT_FIELDS)
        return page(customer_service.list(page_request, search=request.args.get('search', '')))

    @blueprint.route('/<user_id>', methods=['GET'])
    @guard.require_scopes(scopes.USERS_READ)
    def get_user(user_id: str):
        require_id(user_id, 'user')
        return ok(customer_service.get(user_id))

    @blueprint.route('/<user_id>/access', methods=['GET'])
    @guard.require_scopes(scopes.USERS_READ)
    def list_access(user_id: str):
        require_id(user_id, 'user')
        return ok(customer_service.list_access(user_id))

    @blueprint.route('/<user_id>/access', methods=['POST'])
    @guard.require_scopes(scopes.USERS_WRITE)
    def grant_access(user_id: str):
        require_id(user_id, 'user')
        return ok(customer_service.grant_access(user_id, json_body()).to_dict(), 201)

    @blueprint.route('/<user_id>/access/<access_id>', methods=['GET'])
    @guard.require_scopes(scopes.USERS_READ)
    def get_access(user_id: str, access_id: str):
        require_id(user_id, 'user')
        require_id(access_id, 'access')
        return ok(customer_service.get_access(user_id, access_id).to_dict())

    @blueprint.route('/<user_id>/access/<access_id>', methods=['PATCH'])
    @guard.require_scopes(scopes.USERS_WRITE)
    def update_access(user_id: str, access_id: str):
        require_id(user_id, 'user')
        require_id(access_id, 'access')
        return ok(customer_service.update_access(user_id, access_id, json_body()).to_dict())

    @blueprint.route('/<user_id>/access/<access_id>', methods=['DELETE'])
    @guard.require_scopes(scopes.USERS_WRITE)
    def revoke_access(user_id: str, access_id: str):
        require_id(user_id, 'user')
        require_id(access_id, 'access')
        customer_service.revoke_access(user_id, access_id)
        return '', 204

    return blueprint
