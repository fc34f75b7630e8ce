from __future__ import annotations

from typing import Any, Dict, List, Optional

from gateflow.models import Product
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec


class ProductRepository(BaseRepository):
    """Repository for products."""
    table = 'products'

    def get(self, product_id: str) -> Optional[Product]:
        return Product.from_row(self.get_row(product_id))

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int,
             status: str = 'all', search: Optional[str] = None) -> List[Product]:
        query = ListQuery('SELECT * FROM products')
        if status == 'active':
            query.where('is_active = 1')
        elif status == 'inactive':
            query.where('is_active = 0')
        if search:
            pattern = f'%{search}%'
            query.where('(name LIKE ? OR slug LIKE ?)', pattern, pattern)
        query.apply_cursor(cursor, sort)
        return [Product.from_row(row) for row in self._page(query, limit)]

    def create(self, values: Dict[str, Any]) -> Product:
        self._insert(_flags(values))
        return self.get(values['id'])

    def update(self, product_id: str, changes: Dict[str, Any]) -> Optional[Product]:
        if not self._update(product_id, _flags(changes)):
            return None
        return self.get(product_id)

    def count(self) -> Dict[str, int]:
        row = self._fetchone('SELECT COUNT(*) AS total, COALESCE(SUM(is_active), 0) AS active FROM products')
        return {'total': row['total'], 'active': row['active']}


def _flags(values: Dict[str, Any]) -> Dict[str, Any]:
    converted = dict(values)
    for flag in ('is_active', 'is_featured'):
        if flag in converted:
            converted[flag] = 1 if converted[flag] else 0
    return converted
