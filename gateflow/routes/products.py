from __future__ import annotations

from flask import Blueprint, request

from gateflow.services.product_service import PRODUCT_SORT_FIELDS
from gateflow.utils import scopes
from gateflow.utils.http import json_body, ok, page, require_id
from gateflow.utils.pagination import PageRequest


def create_products_blueprint(*, product_service, guard, logger):
    """Create product catalog routes."""
    blueprint = Blueprint('products', __name__, url_prefix='/api/v1/products')

    @blueprint.route('', methods=['GET'])
    @guard.require_scopes(scopes.PRODUCTS_READ)
    def list_products():
        page_request = PageRequest.from_args(request.args, PRODUCT_SORT_FIELDS)
        return page(product_service.list(
            page_request,
            status=request.args.get('status', 'all'),
            search=request.args.get('search', ''),
        ))

    @blueprint.route('', methods=['POST'])
    @guard.require_scopes(scopes.PRODUCTS_WRITE)
    def create_product():
        return ok(product_service.create(json_body()).to_dict(), 201)

    @blueprint.route('/<product_id>', methods=['GET'])
    @guard.require_scopes(scopes.PRODUCTS_READ)
    def get_product(product_id: str):
        require_id(product_id, 'product')
        return ok(product_service.get(product_id).to_dict())

    @blueprint.route('/<product_id>', methods=['PATCH'])
    @guard.require_scopes(scopes.PRODUCTS_WRITE)
    def update_product(product_id: str):
        require_id(product_id, 'product')
        return ok(product_service.update(product_id, json_body()).to_dict())

    @blueprint.route('/<product_id>', methods=['DELETE'])
    @guard.require_scopes(scopes.PRODUCTS_WRITE)
    def delete_product(product_id: str):
        require_id(product_id, 'product')
        product_service.delete(product_id)
        return '', 204

    return blueprint
