from __future__ import annotations

import logging
from typing import Any, Dict

from gateflow.models import Coupon
from gateflow.models.updates import CouponUpdate, merge_changes
from gateflow.repositories import CouponRepository
from gateflow.services.base import NotFoundError, ValidationError
from gateflow.utils import validators
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

COUPON_SORT_FIELDS = {
    'created_at': str,
    'updated_at': str,
    'code': str,
    'name': str,
    'current_usage_count': int,
}
COUPON_STATUSES = ('all', 'active', 'inactive', 'expired')


def _check_discount(values: Dict[str, Any]) -> None:
    if values.get('discount_type') == 'percentage' and values.get('discount_value', 0) > 100:
        raise ValidationError('Percentage discount cannot exceed 100')
    if values.get('discount_type') == 'fixed' and not values.get('currency'):
        raise ValidationError('Fixed discounts require a currency')


class CouponService:
    """Coupon management."""

    def __init__(self, coupon_repo: CouponRepository):
        self._repo = coupon_repo

    def list(self, page: PageRequest, status: str = 'all', search: str = '') -> Dict[str, Any]:
        if status not in COUPON_STATUSES:
            raise ValidationError(f"Invalid status. Allowed: {', '.join(COUPON_STATUSES)}")
        search = validators.sanitize_string(search, max_length=50)
        coupons = self._repo.list(page.sort, page.cursor, page.limit, status=status,
                                  search=search or None, now=isoformat(utcnow()))
        return build_page(coupons, page.limit, page.sort, page.cursor_token)

    def get(self, coupon_id: str) -> Coupon:
        coupon = self._repo.get(coupon_id)
        if coupon is None:
            raise NotFoundError('Coupon not found')
        return coupon

    def create(self, data: Dict[str, Any]) -> Coupon:
        valid, error = validators.validate_required_fields(data, ['code', 'discount_type', 'discount_value'])
        if not valid:
            raise ValidationError(error)
        fields = dict(data)
        code = fields.pop('code')
        valid, error = validators.validate_coupon_code(code)
        if not valid:
            raise ValidationError(error, details={'field': 'code'})
        code = code.upper()
        fields.setdefault('name', code)
        values = CouponUpdate.parse(fields)
        _check_discount(values)

        now = isoformat(utcnow())
        values.update({'id': self._repo.new_id(), 'code': code, 'created_at': now, 'updated_at': now})
        coupon = self._repo.create(values)
        logger.info(f"Coupon created: {coupon.code}")
        return coupon

    def update(self, coupon_id: str, payload: Any) -> Coupon:
        changes = CouponUpdate.parse(payload)
        current = self.get(coupon_id)
        _check_discount(merge_changes(current.to_dict(), changes))
        changes['updated_at'] = isoformat(utcnow())
        coupon = self._repo.update(coupon_id, changes)
        if coupon is None:
            raise NotFoundError('Coupon not found')
        return coupon

    def delete(self, coupon_id: str) -> None:
        coupon = self.get(coupon_id)
        self._repo.delete(coupon_id)
        logger.info(f"Coupon deleted: {coupon.code}")
