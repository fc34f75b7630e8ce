from __future__ import annotations

from typing import Any, Dict, List, Optional

from gateflow.models import Coupon
from gateflow.repositories.base import BaseRepository
from gateflow.utils.pagination import Cursor, ListQuery, SortSpec


class CouponRepository(BaseRepository):
    """Repository for coupons."""
    table = 'coupons'

    def get(self, coupon_id: str) -> Optional[Coupon]:
        return Coupon.from_row(self.get_row(coupon_id))

    def list(self, sort: SortSpec, cursor: Optional[Cursor], limit: int, status: str = 'all',
             search: Optional[str] = None, now: Optional[str] = None) -> List[Coupon]:
        query = ListQuery('SELECT * FROM coupons')
        if status == 'active':
            query.where('is_active = 1 AND (expires_at IS NULL OR expires_at > ?)', now)
        elif status == 'inactive':
            query.where('is_active = 0')
        elif status == 'expired':
            query.where('expires_at IS NOT NULL AND expires_at <= ?', now)
        if search:
            query.where('code LIKE ?', f'%{search.upper()}%')
        query.apply_cursor(cursor, sort)
        return [Coupon.from_row(row) for row in self._page(query, limit)]

    def create(self, values: Dict[str, Any]) -> Coupon:
        values = dict(values)
        values['is_active'] = 1 if values.get('is_active', True) else 0
        self._insert(values)
        return self.get(values['id'])

    def update(self, coupon_id: str, changes: Dict[str, Any]) -> Optional[Coupon]:
        changes = dict(changes)
        if 'is_active' in changes:
            changes['is_active'] = 1 if changes['is_active'] else 0
        if not self._update(coupon_id, changes):
            return None
        return self.get(coupon_id)
