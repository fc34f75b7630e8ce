from __future__ import annotations

from flask import Blueprint, request

from gateflow.services.coupon_service import COUPON_SORT_FIELDS
from gateflow.utils import scopes
from gateflow.utils.http import json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_coupons_blueprint(*, coupon_service, guard, logger):
    """Create coupon routes."""
    blueprint = Blueprint('coupons', __name__, url_prefix='/api/v1/coupons')

    @blueprint.route('', methods=['GET'])
    @guard.require_scopes(scopes.COUPONS_READ)
    def list_coupons():
        page_request = PageRequest.from_args(request.args, COUPON_SORT_FIELDS)
        return page(coupon_service.list(
            page_request,
            status=request.args.get('status', 'all'),
            search=request.args.get('search', ''),
        ))

    @blueprint.route('', methods=['POST'])
    @guard.require_scopes(scopes.COUPONS_WRITE)
    def create_coupon():
        return ok(coupon_service.create(json_body()).to_dict(), 201)

    @blueprint.route('/<coupon_id>', methods=['GET'])
    @guard.require_scopes(scopes.COUPONS_READ)
    def get_coupon(coupon_id: str):
        require_id(coupon_id, 'coupon')
        return ok(coupon_service.get(coupon_id).to_dict())

    @blueprint.route('/<coupon_id>', methods=['PATCH'])
    @guard.require_scopes(scopes.COUPONS_WRITE)
    def update_coupon(coupon_id: str):
        require_id(coupon_id, 'coupon')
        return ok(coupon_service.update(coupon_id, json_body()).to_dict())

    @blueprint.route('/<coupon_id>', methods=['DELETE'])
    @guard.require_scopes(scopes.COUPONS_WRITE)
    def delete_coupon(coupon_id: str):
        require_id(coupon_id, 'coupon')
        coupon_service.delete(coupon_id)
        return '', 204

    return blueprint
