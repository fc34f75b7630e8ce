from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List

from gateflow.models import Customer, ProductAccess
from gateflow.repositories import CustomerRepository, ProductAccessRepository, ProductRepository
from gateflow.services.base import ConflictError, NotFoundError, ValidationError
from gateflow.utils import validators
from gateflow.utils.pagination import PageRequest, build_page
from gateflow.utils.timeutil import isoformat, normalize_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

CUSTOMER_SORT_FIELDS = {'created_at': str, 'email': str}
GRANT_FIELDS = ('product_id', 'access_duration_days', 'access_expires_at')
# Checked in this order; a PATCH body names exactly one of them
ACCESS_UPDATE_FIELDS = ('extend_days', 'access_expires_at', 'access_duration_days')


def _reject_unknown(payload: Dict[str, Any], allowed) -> None:
    unknown = sorted(key for key in payload if key not in allowed)
    if unknown:
        raise ValidationError(
            f"Unknown fields: {', '.join(unknown)}",
            details={'unknown_fields': unknown, 'allowed_fields': list(allowed)},
        )


class CustomerService:
    """Customers and the product access they hold."""

    def __init__(self, customer_repo: CustomerRepository, access_repo: ProductAccessRepository,
                 product_repo: ProductRepository, clock: Callable[[], datetime] = utcnow):
        self._customers = customer_repo
        self._access = access_repo
        self._products = product_repo
        self._clock = clock

    def list(self, page: PageRequest, search: str = '') -> Dict[str, Any]:
        search = validators.sanitize_string(search, max_length=255)
        customers = self._customers.list(page.sort, page.cursor, page.limit, search=search or None)
        return build_page(customers, page.limit, page.sort, page.cursor_token)

    def _customer(self, user_id: str) -> Customer:
        customer = self._customers.get(user_id)
        if customer is None:
            raise NotFoundError('User not found')
        return customer

    def get(self, user_id: str) -> Dict[str, Any]:
        data = self._customer(user_id).to_dict()
        data['product_access'] = self.list_access(user_id)
        return data

    def list_access(self, user_id: str) -> List[Dict[str, Any]]:
        self._customer(user_id)
        return [access.to_dict() for access in self._access.list_for_user(user_id)]

    def get_access(self, user_id: str, access_id: str) -> ProductAccess:
        access = self._access.get_for_user(access_id, user_id)
        if access is None:
            raise NotFoundError('Access entry not found')
        return access

    def _expiry_in_range(self, value: Any, field: str) -> str:
        now = self._clock()
        valid, error = validators.validate_future_timestamp(value, field, now=now)
        if not valid:
            raise ValidationError(error, details={'field': field})
        if parse_timestamp(value) > now + timedelta(days=validators.MAX_ACCESS_DAYS):
            raise ValidationError(f'{field} cannot be more than {validators.MAX_ACCESS_DAYS} days in the future',
                                  details={'field': field})
        return normalize_timestamp(value)

    def _duration(self, value: Any, field: str) -> int:
        valid, error = validators.validate_access_days(value, field)
        if not valid:
            raise ValidationError(error, details={'field': field})
        return value

    def grant_access(self, user_id: str, payload: Dict[str, Any]) -> ProductAccess:
        """Grant a customer access to an active product, open-ended or time-limited."""
        _reject_unknown(payload, GRANT_FIELDS)
        product_id = payload.get('product_id')
        valid, error = validators.validate_uuid(product_id)
        if not valid:
            raise ValidationError(f'product_id: {error}', details={'field': 'product_id'})
        duration = payload.get('access_duration_days')
        expires_at = payload.get('access_expires_at')
        if duration is not None and expires_at is not None:
            raise ValidationError('Provide either access_duration_days or access_expires_at, not both')

        now = self._clock()
        values: Dict[str, Any] = {'access_duration_days': None, 'access_expires_at': None}
        if duration is not None:
            values['access_duration_days'] = self._duration(duration, 'access_duration_days')
            values['access_expires_at'] = isoformat(now + timedelta(days=duration))
        elif expires_at is not None:
            values['access_expires_at'] = self._expiry_in_range(expires_at, 'access_expires_at')

        self._customer(user_id)
        product = self._products.get(product_id)
        if product is None:
            raise NotFoundError('Product not found')
        if not product.is_active:
            raise ValidationError('Cannot grant access to inactive product')
        if self._access.find(user_id, product_id) is not None:
            raise ConflictError('User already has access to this product')

        values.update({
            'id': self._access.new_id(),
            'user_id': user_id,
            'product_id': product_id,
            'created_at': isoformat(now),
        })
        access = self._access.create(values)
        logger.info(f"Access granted: user {user_id} -> product {product.slug} "
                    f"(expires {access.access_expires_at or 'never'})")
        return access

    def update_access(self, user_id: str, access_id: str, payload: Dict[str, Any]) -> ProductAccess:
        """Extend an access entry, set its expiry, or restart it with a new duration."""
        _reject_unknown(payload, ACCESS_UPDATE_FIELDS)
        given = [field for field in ACCESS_UPDATE_FIELDS if payload.get(field) is not None]
        if not given:
            raise ValidationError('No valid update fields provided',
                                  details={'allowed_fields': list(ACCESS_UPDATE_FIELDS)})
        if len(given) > 1:
            raise ValidationError(f"Provide only one of: {', '.join(ACCESS_UPDATE_FIELDS)}")
        field = given[0]
        value = payload[field]

        current = self.get_access(user_id, access_id)
        now = self._clock()
        if field == 'extend_days':
            days = self._duration(value, 'extend_days')
            base = parse_timestamp(current.access_expires_at) if current.access_expires_at else now
            # Lapsed access is extended from now, not from the old expiry
            changes = {'access_expires_at': isoformat(max(base, now) + timedelta(days=days))}
        elif field == 'access_expires_at':
            changes = {'access_expires_at': self._expiry_in_range(value, 'access_expires_at')}
        else:
            days = self._duration(value, 'access_duration_days')
            changes = {'access_duration_days': days, 'access_expires_at': isoformat(now + timedelta(days=days))}

        access = self._access.update(access_id, user_id, changes)
        if access is None:
            raise NotFoundError('Access entry not found')
        logger.info(f"Access {access_id} updated: expires {access.access_expires_at}")
        return access

    def revoke_access(self, user_id: str, access_id: str) -> None:
        if not self._access.delete_for_user(access_id, user_id):
            raise NotFoundError('Access entry not found')
        logger.info(f"Access {access_id} revoked for user {user_id}")
