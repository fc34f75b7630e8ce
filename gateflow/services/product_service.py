from __future__ import annotations

import logging
from typing import Any, Dict

from gateflow.models import Product
from gateflow.models.updates import ProductUpdate
from gateflow.repositories import ProductRepository
from gateflow.services.base import NotFoundError, ValidationError
from gateflow.utils import validators
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

PRODUCT_SORT_FIELDS = {'created_at': str, 'updated_at': str, 'name': str, 'price': int}
PRODUCT_STATUSES = ('all', 'active', 'inactive')


class ProductService:
    """Product catalog management."""

    def __init__(self, product_repo: ProductRepository):
        self._repo = product_repo

    def list(self, page: PageRequest, status: str = 'all', search: str = '') -> Dict[str, Any]:
        if status not in PRODUCT_STATUSES:
            raise ValidationError(f"Invalid status. Allowed: {', '.join(PRODUCT_STATUSES)}")
        search = validators.sanitize_string(search, max_length=100)
        products = self._repo.list(page.sort, page.cursor, page.limit, status=status, search=search or None)
        return build_page(products, page.limit, page.sort, page.cursor_token)

    def get(self, product_id: str) -> Product:
        product = self._repo.get(product_id)
        if product is None:
            raise NotFoundError('Product not found')
        return product

    def create(self, data: Dict[str, Any]) -> Product:
        valid, error = validators.validate_required_fields(data, ['name', 'slug', 'price'])
        if not valid:
            raise ValidationError(error)
        payload = {'currency': 'USD', **data}
        # Creation accepts the same fields as updates
        values = ProductUpdate.parse(payload)
        now = isoformat(utcnow())
        values.update({'id': self._repo.new_id(), 'created_at': now, 'updated_at': now})
        product = self._repo.create(values)
        logger.info(f"Product created: {product.slug}")
        return product

    def update(self, product_id: str, payload: Any) -> Product:
        changes = ProductUpdate.parse(payload)
        self.get(product_id)
        changes['updated_at'] = isoformat(utcnow())
        product = self._repo.update(product_id, changes)
        if product is None:
            raise NotFoundError('Product not found')
        return product

    def delete(self, product_id: str) -> None:
        product = self.get(product_id)
        self._repo.delete(product_id)
        logger.info(f"Product deleted: {product.slug}")
