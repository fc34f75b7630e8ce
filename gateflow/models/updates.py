"""Explicit PATCH schemas.

Each schema names the fields a client may change. Anything else in the body
is rejected instead of being copied into the row.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Tuple

from gateflow.services.base import ValidationError
from gateflow.utils import validators
from gateflow.utils.scopes import validate_scopes
from gateflow.utils.timeutil import normalize_timestamp

UNSET: Any = object()

Check = Callable[[Any], Tuple[bool, str]]


@dataclass
class UpdateSchema:
    @classmethod
    def parse(cls, payload: Any) -> Dict[str, Any]:
        """Validate a PATCH body and return the column changes it describes."""
        if not isinstance(payload, dict):
            raise ValidationError('Request body must be a JSON object')
        allowed = [f.name for f in fields(cls)]
        unknown = sorted(key for key in payload if key not in allowed)
        if unknown:
            raise ValidationError(
                f"Unknown fields: {', '.join(unknown)}",
                details={'unknown_fields': unknown, 'allowed_fields': allowed},
            )
        if not payload:
            raise ValidationError('No valid update fields provided')
        schema = cls(**payload)
        changes: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for name in allowed:
            value = getattr(schema, name)
            if value is UNSET:
                continue
            try:
                changes[name] = schema.clean(name, value)
            except ValidationError as exc:
                errors[name] = exc.message
        if errors:
            raise ValidationError('Validation failed', details={'fields': errors})
        return changes

    def clean(self, name: str, value: Any) -> Any:
        check = self.checks().get(name)
        if check is not None:
            valid, error = check(value)
            if not valid:
                raise ValidationError(error)
        return value

    def checks(self) -> Dict[str, Check]:
        return {}


def _nullable(check: Check) -> Check:
    return lambda value: (True, '') if value is None else check(value)


def _text(max_length: int, label: str) -> Check:
    def check(value):
        if not isinstance(value, str) or not value.strip():
            return False, f'{label} must be a non-empty string'
        if len(value) > max_length:
            return False, f'{label} must be {max_length} characters or less'
        return True, ''
    return check


@dataclass
class ApiKeyUpdate(UpdateSchema):
    name: Any = UNSET
    scopes: Any = UNSET
    rate_limit_per_minute: Any = UNSET
    is_active: Any = UNSET

    def checks(self) -> Dict[str, Check]:
        return {
            'name': validators.validate_key_name,
            'scopes': validate_scopes,
            'rate_limit_per_minute': validators.validate_rate_limit,
            'is_active': lambda value: validators.validate_boolean(value, 'is_active'),
        }

    def clean(self, name: str, value: Any) -> Any:
        value = super().clean(name, value)
        if name == 'name':
            return value.strip()
        if name == 'scopes':
            return list(dict.fromkeys(value))
        return value


@dataclass
class ProductUpdate(UpdateSchema):
    name: Any = UNSET
    slug: Any = UNSET
    description: Any = UNSET
    price: Any = UNSET
    currency: Any = UNSET
    is_active: Any = UNSET
    is_featured: Any = UNSET

    def checks(self) -> Dict[str, Check]:
        return {
            'name': _text(255, 'Name'),
            'slug': validators.validate_slug,
            'description': lambda value: (isinstance(value, str) and len(value) <= 5000,
                                          'Description must be a string of at most 5000 characters'),
            'price': lambda value: validators.validate_amount(value, 'Price'),
            'currency': validators.validate_currency,
            'is_active': lambda value: validators.validate_boolean(value, 'is_active'),
            'is_featured': lambda value: validators.validate_boolean(value, 'is_featured'),
        }

    def clean(self, name: str, value: Any) -> Any:
        if name == 'currency' and isinstance(value, str):
            value = value.upper()
        value = super().clean(name, value)
        return value.strip() if name == 'name' else value


@dataclass
class CouponUpdate(UpdateSchema):
    name: Any = UNSET
    discount_type: Any = UNSET
    discount_value: Any = UNSET
    currency: Any = UNSET
    is_active: Any = UNSET
    expires_at: Any = UNSET
    usage_limit_global: Any = UNSET

    def checks(self) -> Dict[str, Check]:
        return {
            'name': _text(255, 'Name'),
            'discount_type': lambda value: (value in ('percentage', 'fixed'),
                                            'Discount type must be percentage or fixed'),
            'discount_value': lambda value: validators.validate_amount(value, 'Discount value', allow_zero=False),
            'currency': _nullable(validators.validate_currency),
            'is_active': lambda value: validators.validate_boolean(value, 'is_active'),
            'expires_at': _nullable(validators.validate_future_timestamp),
            'usage_limit_global': _nullable(
                lambda value: (validators.is_integer(value) and value > 0,
                               'Usage limit must be a positive integer')),
        }

    def clean(self, name: str, value: Any) -> Any:
        if name == 'currency' and isinstance(value, str):
            value = value.upper()
        value = super().clean(name, value)
        if name == 'expires_at':
            return normalize_timestamp(value)
        return value.strip() if name == 'name' else value


@dataclass
class WebhookUpdate(UpdateSchema):
    url: Any = UNSET
    events: Any = UNSET
    description: Any = UNSET
    is_active: Any = UNSET

    def checks(self) -> Dict[str, Check]:
        return {
            'url': validators.validate_url,
            'events': validators.validate_events,
            'description': _nullable(_text(500, 'Description')),
            'is_active': lambda value: validators.validate_boolean(value, 'is_active'),
        }


def merge_changes(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current)
    merged.update(changes)
    return merged


__all__: List[str] = [
    'ApiKeyUpdate',
    'CouponUpdate',
    'ProductUpdate',
    'UNSET',
    'UpdateSchema',
    'WebhookUpdate',
    'merge_changes',
]
