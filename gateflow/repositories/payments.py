from __future__ import annotations

from typing import Any, Dict, List, Optional

from gateflow.models import PaymentTransaction
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec


# Every status a payment reaches once money was taken
PAID_STATUSES = ('completed', 'partially_refunded', 'refunded')


class PaymentRepository(BaseRepository):
    """Repository for payment transactions."""
    table = 'payment_transactions'

    def get(self, transaction_id: str) -> Optional[PaymentTransaction]:
        return PaymentTransaction.from_row(self.get_row(transaction_id))

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int,
             filters: Optional[Dict[str, Any]] = None) -> List[PaymentTransaction]:
        filters = filters or {}
        query = ListQuery('SELECT * FROM payment_transactions')
        if filters.get('status'):
            query.where('status = ?', filters['status'])
        if filters.get('product_id'):
            query.where('product_id = ?', filters['product_id'])
        if filters.get('email'):
            query.where('customer_email LIKE ?', f"%{filters['email'].lower()}%")
        if filters.get('date_from'):
            query.where('created_at >= ?', filters['date_from'])
        if filters.get('date_to'):
            query.where('created_at <= ?', filters['date_to'])
        query.apply_cursor(cursor, sort)
        return [PaymentTransaction.from_row(row) for row in self._page(query, limit)]

    def create(self, values: Dict[str, Any]) -> PaymentTransaction:
        self._insert(values)
        return self.get(values['id'])

    def apply_refund(self, transaction_id: str, changes: Dict[str, Any], expected_status: str) -> bool:
        """Record a refund, guarded on the status the caller validated against."""
        return self._update(transaction_id, changes, 'status = ?', (expected_status,)) > 0

    def revenue_by_currency(self, since: Optional[str] = None) -> Dict[str, int]:
        query = '''
            SELECT currency, COALESCE(SUM(amount - refunded_amount), 0) AS total
            FROM payment_transactions
            WHERE status IN ('completed', 'partially_refunded')
        '''
        params: List[Any] = []
        if since:
            query += ' AND created_at >= ?'
            params.append(since)
        query += ' GROUP BY currency ORDER BY currency'
        return {row['currency']: row['total'] for row in self._fetchall(query, params)}

    def count(self, since: Optional[str] = None) -> int:
        if since:
            row = self._fetchone('SELECT COUNT(*) AS total FROM payment_transactions WHERE created_at >= ?', (since,))
        else:
            row = self._fetchone('SELECT COUNT(*) AS total FROM payment_transactions')
        return row['total']

    def paid_between(self, start: str, end: str, product_id: Optional[str] = None) -> List[PaymentTransaction]:
        """Paid transactions created in [start, end], oldest first; refunded ones included."""
        query, params = self._paid_filter(start, end, product_id)
        rows = self._fetchall(f'SELECT * FROM payment_transactions WHERE {query} ORDER BY created_at, id', params)
        return [PaymentTransaction.from_row(row) for row in rows]

    def paid_totals(self, start: str, end: str, product_id: Optional[str] = None) -> Dict[str, int]:
        query, params = self._paid_filter(start, end, product_id)
        row = self._fetchone(
            f'SELECT COALESCE(SUM(amount), 0) AS revenue, COUNT(*) AS transactions '
            f'FROM payment_transactions WHERE {query}',
            params,
        )
        return {'revenue': row['revenue'], 'transactions': row['transactions']}

    def sales_by_product(self, since: str) -> List[Dict[str, Any]]:
        """Gross sales per product and currency since ``since``."""
        placeholders = ', '.join('?' for _ in PAID_STATUSES)
        rows = self._fetchall(
            f'''
            SELECT product_id, currency, SUM(amount) AS revenue, COUNT(*) AS sales_count
            FROM payment_transactions
            WHERE status IN ({placeholders}) AND created_at >= ?
            GROUP BY product_id, currency
            ''',
            (*PAID_STATUSES, since),
        )
        return [dict(row) for row in rows]

    @staticmethod
    def _paid_filter(start: str, end: str, product_id: Optional[str]):
        placeholders = ', '.join('?' for _ in PAID_STATUSES)
        query = f'status IN ({placeholders}) AND created_at >= ? AND created_at <= ?'
        params: List[Any] = [*PAID_STATUSES, start, end]
        if product_id:
            query += ' AND product_id = ?'
            params.append(product_id)
        return query, params
