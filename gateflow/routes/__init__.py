"""Routes package (one blueprint factory per resource)."""
from .analytics import create_analytics_blueprint
from .api_keys import create_api_keys_blueprint
from .auth import create_auth_blueprint
from .coupons import create_coupons_blueprint
from .health import create_health_blueprint
from .payments import create_payments_blueprint
from .products import create_products_blueprint
from .refund_requests import create_refund_requests_blueprint
from .users import create_users_blueprint
from .webhooks import create_webhooks_blueprint

__all__ = [
    'create_analytics_blueprint',
    'create_api_keys_blueprint',
    'create_auth_blueprint',
    'create_coupons_blueprint',
    'create_health_blueprint',
    'create_payments_blueprint',
    'create_products_blueprint',
    'create_refund_requests_blueprint',
    'create_users_blueprint',
    'create_webhooks_blueprint',
]
