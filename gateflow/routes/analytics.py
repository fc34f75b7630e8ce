from __future__ import annotations

from flask import Blueprint, request

from gateflow.services.base import ValidationError
from gateflow.utils import scopes
from gateflow.utils.http import ok
from gateflow.utils.validators import validate_currency


def create_analytics_blueprint(*, analytics_service, guard, logger):
    """Create analytics routes."""
    blueprint = Blueprint('analytics', __name__, url_prefix='/api/v1/analytics')

    @blueprint.route('/dashboard', methods=['GET'])
    @guard.require_scopes(scopes.ANALYTICS_READ)
    def dashboard():
        """Revenue, transaction, product, user and refund totals."""
        currency = request.args.get('currency')
        if currency:
            currency = currency.upper()
            valid, error = validate_currency(currency)
            if not valid:
                raise ValidationError(error)
        return ok(analytics_service.dashboard(currency))

    @blueprint.route('/revenue', methods=['GET'])
    @guard.require_scopes(scopes.ANALYTICS_READ)
    def revenue():
        return ok(analytics_service.revenue(
            period=request.args.get('period'),
            start_date=request.args.get('start_date'),
            end_date=request.args.get('end_date'),
            product_id=request.args.get('product_id'),
            group_by=request.args.get('group_by'),
        ))

    @blueprint.route('/top-products', methods=['GET'])
    @guard.require_scopes(scopes.ANALYTICS_READ)
    def top_products():
        return ok(analytics_service.top_products(
            period=request.args.get('period'),
            limit=request.args.get('limit'),
            sort_by=request.args.get('sort_by'),
        ))

    return blueprint
