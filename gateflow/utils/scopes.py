"""API key scopes and permission checks."""
from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

WILDCARD = '*'

PRODUCTS_READ = 'products:read'
PRODUCTS_WRITE = 'products:write'
USERS_READ = 'users:read'
USERS_WRITE = 'users:write'
COUPONS_READ = 'coupons:read'
COUPONS_WRITE = 'coupons:write'
ANALYTICS_READ = 'analytics:read'
WEBHOOKS_READ = 'webhooks:read'
WEBHOOKS_WRITE = 'webhooks:write'
REFUND_REQUESTS_READ = 'refund-requests:read'
REFUND_REQUESTS_WRITE = 'refund-requests:write'
SYSTEM_READ = 'system:read'

ALL_SCOPES = (
    WILDCARD,
    PRODUCTS_READ,
    PRODUCTS_WRITE,
    USERS_READ,
    USERS_WRITE,
    COUPONS_READ,
    COUPONS_WRITE,
    ANALYTICS_READ,
    WEBHOOKS_READ,
    WEBHOOKS_WRITE,
    REFUND_REQUESTS_READ,
    REFUND_REQUESTS_WRITE,
    SYSTEM_READ,
)

SCOPE_PRESETS = {
    'full': [WILDCARD],
    'read_only': [
        PRODUCTS_READ,
        USERS_READ,
        COUPONS_READ,
        ANALYTICS_READ,
        WEBHOOKS_READ,
        REFUND_REQUESTS_READ,
        SYSTEM_READ,
    ],
    'analytics_only': [ANALYTICS_READ],
    'support': [
        PRODUCTS_READ,
        USERS_READ,
        USERS_WRITE,
        REFUND_REQUESTS_READ,
        REFUND_REQUESTS_WRITE,
    ],
}


def has_scope(granted: Iterable[str], required: str) -> bool:
    """Check a single required scope.

    The wildcard grants everything and a ``:write`` scope implies the
    matching ``:read`` scope.
    """
    granted = set(granted)
    if WILDCARD in granted or required in granted:
        return True
    if required.endswith(':read'):
        return required[:-len(':read')] + ':write' in granted
    return False


def missing_scopes(granted: Iterable[str], required: Sequence[str]) -> List[str]:
    granted = list(granted)
    return [scope for scope in required if not has_scope(granted, scope)]


def find_invalid_scopes(scopes: Iterable[str]) -> List[str]:
    return [scope for scope in scopes if scope not in ALL_SCOPES]


def validate_scopes(scopes) -> Tuple[bool, str]:
    """Validate a list of scopes for issuance or update."""
    if not isinstance(scopes, list) or not scopes:
        return False, 'At least one scope is required'
    if not all(isinstance(scope, str) for scope in scopes):
        return False, 'Scopes must be strings'
    invalid = find_invalid_scopes(scopes)
    if invalid:
        return False, f"Invalid scopes: {', '.join(invalid)}"
    return True, ''
