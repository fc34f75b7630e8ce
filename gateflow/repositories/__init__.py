"""repositories package."""
from .admin_users import AdminUserRepository
from .api_keys import ApiKeyAuditRepository, ApiKeyRepository
from .coupons import CouponRepository
from .payments import PaymentRepository
from .products import ProductRepository
from .refund_requests import RefundRequestRepository
from .users import CustomerRepository, ProductAccessRepository
from .webhooks import WebhookLogRepository, WebhookRepository

__all__ = [
    'AdminUserRepository',
    'ApiKeyAuditRepository',
    'ApiKeyRepository',
    'CouponRepository',
    'CustomerRepository',
    'PaymentRepository',
    'ProductAccessRepository',
    'ProductRepository',
    'RefundRequestRepository',
    'WebhookLogRepository',
    'WebhookRepository',
]
