from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from flask_login import UserMixin


class RowModel:
    """Build dataclasses from sqlite rows, decoding flag and JSON columns."""
    _bool_fields: ClassVar[Tuple[str, ...]] = ()
    _json_fields: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def from_row(cls, row):
        if row is None:
            return None
        keys = set(row.keys())
        data: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in keys:
                continue
            value = row[f.name]
            if f.name in cls._bool_fields:
                value = bool(value)
            elif f.name in cls._json_fields and isinstance(value, str):
                value = json.loads(value)
            data[f.name] = value
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdminUser(UserMixin, RowModel):
    id: str
    email: str
    created_at: Optional[str] = None
    last_login: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'email': self.email, 'last_login': self.last_login}


@dataclass
class ApiKey(RowModel):
    id: str
    admin_user_id: str
    name: str
    key_prefix: str
    key_hash: str
    scopes: List[str] = field(default_factory=lambda: ['*'])
    rate_limit_per_minute: int = 60
    is_active: bool = True
    expires_at: Optional[str] = None
    revoked_at: Optional[str] = None
    revoked_reason: Optional[str] = None
    rotation_grace_until: Optional[str] = None
    rotated_from_id: Optional[str] = None
    last_used_at: Optional[str] = None
    last_used_ip: Optional[str] = None
    usage_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    _bool_fields: ClassVar[Tuple[str, ...]] = ('is_active',)
    _json_fields: ClassVar[Tuple[str, ...]] = ('scopes',)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # The hash never leaves the server
        data.pop('key_hash')
        return data


@dataclass
class ApiKeyAuditEvent(RowModel):
    id: str
    api_key_id: str
    event_type: str
    event_data: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    created_at: Optional[str] = None

    _json_fields: ClassVar[Tuple[str, ...]] = ('event_data',)


@dataclass
class Product(RowModel):
    id: str
    name: str
    slug: str
    price: int
    currency: str = 'USD'
    description: str = ''
    is_active: bool = True
    is_featured: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    _bool_fields: ClassVar[Tuple[str, ...]] = ('is_active', 'is_featured')


@dataclass
class Coupon(RowModel):
    id: str
    code: str
    name: str
    discount_type: str
    discount_value: int
    currency: Optional[str] = None
    is_active: bool = True
    expires_at: Optional[str] = None
    usage_limit_global: Optional[int] = None
    current_usage_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    _bool_fields: ClassVar[Tuple[str, ...]] = ('is_active',)


@dataclass
class Customer(RowModel):
    id: str
    email: str
    created_at: Optional[str] = None
    products_count: int = 0


@dataclass
class ProductAccess(RowModel):
    """A customer's grant to one product, joined with the product it unlocks."""
    id: str
    user_id: str
    product_id: str
    created_at: Optional[str] = None
    access_expires_at: Optional[str] = None
    access_duration_days: Optional[int] = None
    product_name: Optional[str] = None
    product_slug: Optional[str] = None
    product_price: Optional[int] = None
    product_currency: Optional[str] = None
    product_is_active: bool = True

    _bool_fields: ClassVar[Tuple[str, ...]] = ('product_is_active',)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'product_id': self.product_id,
            'product_slug': self.product_slug,
            'product_name': self.product_name,
            'product_price': self.product_price,
            'product_currency': self.product_currency,
            'product_is_active': self.product_is_active,
            'granted_at': self.created_at,
            'expires_at': self.access_expires_at,
            'duration_days': self.access_duration_days,
        }


@dataclass
class PaymentTransaction(RowModel):
    id: str
    product_id: str
    customer_email: str
    amount: int
    currency: str
    status: str
    user_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    refund_id: Optional[str] = None
    refunded_amount: int = 0
    refunded_at: Optional[str] = None
    refunded_by: Optional[str] = None
    refund_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def refundable_amount(self) -> int:
        return self.amount - (self.refunded_amount or 0)


@dataclass
class RefundRequest(RowModel):
    id: str
    transaction_id: str
    product_id: str
    customer_email: str
    requested_amount: int
    currency: str
    status: str = 'pending'
    user_id: Optional[str] = None
    reason: Optional[str] = None
    admin_id: Optional[str] = None
    admin_response: Optional[str] = None
    processed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class WebhookEndpoint(RowModel):
    id: str
    url: str
    events: List[str] = field(default_factory=list)
    description: Optional[str] = None
    secret: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    _bool_fields: ClassVar[Tuple[str, ...]] = ('is_active',)
    _json_fields: ClassVar[Tuple[str, ...]] = ('events',)

    def to_dict(self, include_secret: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if not include_secret:
            data.pop('secret')
        return data


@dataclass
class WebhookLog(RowModel):
    id: str
    endpoint_id: str
    event_type: str
    status: str
    http_status: Optional[int] = None
    duration_ms: Optional[int] = None
    created_at: Optional[str] = None


__all__ = [
    'AdminUser',
    'ApiKey',
    'ApiKeyAuditEvent',
    'Coupon',
    'Customer',
    'PaymentTransaction',
    'ProductAccess',
    'Product',
    'RefundRequest',
    'RowModel',
    'WebhookEndpoint',
    'WebhookLog',
]
