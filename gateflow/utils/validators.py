"""Validation helpers for GateFlow."""
from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from gateflow.utils.timeutil import parse_timestamp, utcnow

MAX_NAME_LENGTH = 100
MAX_REASON_LENGTH = 500
MIN_RATE_LIMIT = 1
MAX_RATE_LIMIT = 1000
DEFAULT_RATE_LIMIT = 60
MAX_GRACE_PERIOD_HOURS = 168
DEFAULT_GRACE_PERIOD_HOURS = 24
MAX_AMOUNT = 99999999
MAX_ACCESS_DAYS = 3650

_SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
_COUPON_CODE_PATTERN = re.compile(r'^[A-Z0-9_-]{3,50}$')
_CURRENCY_PATTERN = re.compile(r'^[A-Z]{3}$')
_EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_uuid(value: Any) -> Tuple[bool, str]:
    """Validate a UUID path or body parameter."""
    if not isinstance(value, str) or not value:
        return False, 'ID is required'
    try:
        uuid.UUID(value)
    except ValueError:
        return False, 'ID must be a valid UUID'
    return True, ''


def validate_key_name(name: Any) -> Tuple[bool, str]:
    if not isinstance(name, str) or not name.strip():
        return False, 'Name is required'
    if len(name.strip()) > MAX_NAME_LENGTH:
        return False, f'Name must be {MAX_NAME_LENGTH} characters or less'
    return True, ''


def validate_rate_limit(value: Any) -> Tuple[bool, str]:
    if not is_integer(value) or not MIN_RATE_LIMIT <= value <= MAX_RATE_LIMIT:
        return False, f'Rate limit must be an integer between {MIN_RATE_LIMIT} and {MAX_RATE_LIMIT}'
    return True, ''


def validate_grace_period(value: Any) -> Tuple[bool, str]:
    if not is_integer(value) or not 0 <= value <= MAX_GRACE_PERIOD_HOURS:
        return False, f'Grace period must be an integer between 0 and {MAX_GRACE_PERIOD_HOURS} hours'
    return True, ''


def validate_future_timestamp(value: Any, label: str = 'Expiration date',
                              now: Optional[datetime] = None) -> Tuple[bool, str]:
    """Validate an ISO-8601 timestamp that must lie after ``now`` (default: the current time)."""
    if not isinstance(value, str) or not value:
        return False, f'{label} must be an ISO-8601 string'
    try:
        parsed = parse_timestamp(value)
    except ValueError:
        return False, f'{label} is not a valid ISO-8601 timestamp'
    if parsed <= (now or utcnow()):
        return False, f'{label} must be in the future'
    return True, ''


def validate_access_days(value: Any, label: str = 'access_duration_days') -> Tuple[bool, str]:
    if not is_integer(value) or not 1 <= value <= MAX_ACCESS_DAYS:
        return False, f'{label} must be an integer between 1 and {MAX_ACCESS_DAYS}'
    return True, ''


def validate_reason(reason: Any) -> Tuple[bool, str]:
    if reason is None:
        return True, ''
    if not isinstance(reason, str):
        return False, 'Reason must be a string'
    if len(reason) > MAX_REASON_LENGTH:
        return False, f'Reason must be {MAX_REASON_LENGTH} characters or less'
    return True, ''


def validate_slug(slug: Any) -> Tuple[bool, str]:
    if not isinstance(slug, str) or not slug:
        return False, 'Slug is required'
    if len(slug) > 100:
        return False, 'Slug must be 100 characters or less'
    if not _SLUG_PATTERN.match(slug):
        return False, 'Slug may only contain lowercase letters, numbers and single hyphens'
    return True, ''


def validate_currency(currency: Any) -> Tuple[bool, str]:
    if not isinstance(currency, str) or not _CURRENCY_PATTERN.match(currency):
        return False, 'Currency must be a 3-letter uppercase ISO code'
    return True, ''


def validate_amount(amount: Any, label: str = 'Amount', allow_zero: bool = True) -> Tuple[bool, str]:
    """Validate an amount in minor units (cents)."""
    minimum = 0 if allow_zero else 1
    if not is_integer(amount) or amount < minimum:
        qualifier = 'non-negative' if allow_zero else 'positive'
        return False, f'{label} must be a {qualifier} integer (in cents)'
    if amount > MAX_AMOUNT:
        return False, f'{label} cannot exceed {MAX_AMOUNT} cents'
    return True, ''


def validate_coupon_code(code: Any) -> Tuple[bool, str]:
    if not isinstance(code, str) or not _COUPON_CODE_PATTERN.match(code.upper()):
        return False, 'Code must be 3-50 characters of letters, numbers, "_" or "-"'
    return True, ''


def validate_email(email: Any) -> Tuple[bool, str]:
    if not isinstance(email, str) or not _EMAIL_PATTERN.match(email):
        return False, 'Invalid email address'
    return True, ''


def validate_boolean(value: Any, label: str) -> Tuple[bool, str]:
    if not isinstance(value, bool):
        return False, f'{label} must be a boolean'
    return True, ''


def validate_required_fields(data: Dict, required_fields: List[str]) -> Tuple[bool, str]:
    """Validate that required fields are present in a dictionary."""
    for field in required_fields:
        if field not in data or data[field] is None or data[field] == '':
            return False, f"Missing required field: {field}"
    return True, ""


def validate_url(url: str, schemes: List[str] | None = None) -> Tuple[bool, str]:
    """Validate URL format."""
    if schemes is None:
        schemes = ['http', 'https']
    if not url or not isinstance(url, str):
        return False, "URL is required"
    if len(url) > 2048:
        return False, "URL is too long"
    scheme_pattern = '|'.join(schemes)
    pattern = rf'^({scheme_pattern})://[^\s/$.?#][^\s]*$'
    if not re.match(pattern, url):
        return False, "Invalid URL format"
    return True, ""


def sanitize_string(value: str, max_length: int = 255) -> str:
    """Sanitize string input."""
    if not value:
        return ""
    value = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', str(value))
    return value[:max_length].strip()


WEBHOOK_EVENT_TYPES = (
    'purchase.completed',
    'lead.captured',
    'waitlist.signup',
    'payment.completed',
    'payment.refunded',
    'payment.failed',
    'user.access_granted',
    'user.access_revoked',
    'product.created',
    'product.updated',
    'product.deleted',
)


def validate_events(events: Any) -> Tuple[bool, str]:
    """Validate webhook event subscriptions."""
    if not isinstance(events, list) or not events:
        return False, 'Events must be a non-empty array'
    invalid = [event for event in events if event not in WEBHOOK_EVENT_TYPES]
    if invalid:
        return False, f"Invalid event types: {', '.join(str(event) for event in invalid)}"
    return True, ''
