from __future__ import annotations

from typing import Any, Dict, List, Optional

from gateflow.models import Customer, ProductAccess
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec

_CUSTOMER_SELECT = '''
    SELECT u.id, u.email, u.created_at,
           (SELECT COUNT(*) FROM user_product_access a WHERE a.user_id = u.id) AS products_count
    FROM users u
'''


class CustomerRepository(BaseRepository):
    """Repository for customers (end users holding product access)."""
    table = 'users'

    def get(self, user_id: str) -> Optional[Customer]:
        return Customer.from_row(self._fetchone(_CUSTOMER_SELECT + ' WHERE u.id = ?', (user_id,)))

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int,
             search: Optional[str] = None) -> List[Customer]:
        query = ListQuery(_CUSTOMER_SELECT, table_alias='u')
        if search:
            query.where('u.email LIKE ?', f'%{search.lower()}%')
        query.apply_cursor(cursor, sort)
        return [Customer.from_row(row) for row in self._page(query, limit)]

    def create(self, user_id: str, email: str, created_at: str) -> Customer:
        self._insert({'id': user_id, 'email': email, 'created_at': created_at})
        return self.get(user_id)

    def count(self) -> int:
        return self._fetchone('SELECT COUNT(*) AS total FROM users')['total']


_ACCESS_SELECT = '''
    SELECT a.id, a.user_id, a.product_id, a.created_at, a.access_expires_at, a.access_duration_days,
           p.name AS product_name, p.slug AS product_slug, p.price AS product_price,
           p.currency AS product_currency, p.is_active AS product_is_active
    FROM user_product_access a
    JOIN products p ON p.id = a.product_id
'''


class ProductAccessRepository(BaseRepository):
    """Repository for user_product_access grants."""
    table = 'user_product_access'

    def grant(self, user_id: str, product_id: str, created_at: str) -> None:
        """Grant open-ended access; an existing grant is left untouched."""
        self._execute(
            'INSERT OR IGNORE INTO user_product_access (id, user_id, product_id, created_at) VALUES (?, ?, ?, ?)',
            (self.new_id(), user_id, product_id, created_at),
        )

    def create(self, values: Dict[str, Any]) -> Optional[ProductAccess]:
        """Insert a grant; raises sqlite3.IntegrityError if the user already holds the product."""
        self._insert(values)
        return self.get_for_user(values['id'], values['user_id'])

    def get_for_user(self, access_id: str, user_id: str) -> Optional[ProductAccess]:
        return ProductAccess.from_row(
            self._fetchone(_ACCESS_SELECT + ' WHERE a.id = ? AND a.user_id = ?', (access_id, user_id))
        )

    def find(self, user_id: str, product_id: str) -> Optional[ProductAccess]:
        return ProductAccess.from_row(
            self._fetchone(_ACCESS_SELECT + ' WHERE a.user_id = ? AND a.product_id = ?', (user_id, product_id))
        )

    def update(self, access_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[ProductAccess]:
        if not self._update(access_id, changes, 'user_id = ?', (user_id,)):
            return None
        return self.get_for_user(access_id, user_id)

    def delete_for_user(self, access_id: str, user_id: str) -> bool:
        return self._execute(
            'DELETE FROM user_product_access WHERE id = ? AND user_id = ?',
            (access_id, user_id),
        ) > 0

    def revoke(self, user_id: str, product_id: str) -> bool:
        return self._execute(
            'DELETE FROM user_product_access WHERE user_id = ? AND product_id = ?',
            (user_id, product_id),
        ) > 0

    def has_access(self, user_id: str, product_id: str, now: Optional[str] = None) -> bool:
        """True while the grant exists and, when ``now`` is given, has not expired."""
        query = 'SELECT 1 FROM user_product_access WHERE user_id = ? AND product_id = ?'
        params: List[Any] = [user_id, product_id]
        if now is not None:
            query += ' AND (access_expires_at IS NULL OR access_expires_at > ?)'
            params.append(now)
        return self._fetchone(query, params) is not None

    def list_for_user(self, user_id: str) -> List[ProductAccess]:
        rows = self._fetchall(_ACCESS_SELECT + ' WHERE a.user_id = ? ORDER BY a.created_at DESC, a.id DESC',
                              (user_id,))
        return [ProductAccess.from_row(row) for row in rows]
