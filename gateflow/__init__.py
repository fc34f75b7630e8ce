"""Application package for GateFlow."""

from __future__ import annotations

import logging
import re
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, current_app, g, jsonify, request
from flask_talisman import Talisman
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

from gateflow.auth import AccessGuard
from gateflow.config import Config
from gateflow.db import make_db_factory
from gateflow.extensions import csrf, limiter, login_manager
from gateflow.repositories import (
    AdminUserRepository,
    ApiKeyAuditRepository,
    ApiKeyRepository,
    CouponRepository,
    CustomerRepository,
    PaymentRepository,
    ProductAccessRepository,
    ProductRepository,
    RefundRequestRepository,
    WebhookLogRepository,
    WebhookRepository,
)
from gateflow.routes import (
    create_analytics_blueprint,
    create_api_keys_blueprint,
    create_auth_blueprint,
    create_coupons_blueprint,
    create_health_blueprint,
    create_payments_blueprint,
    create_products_blueprint,
    create_refund_requests_blueprint,
    create_users_blueprint,
    create_webhooks_blueprint,
)
from gateflow.services.analytics_service import AnalyticsService
from gateflow.services.api_key_service import ApiKeyService
from gateflow.services.base import RateLimitedError, ServiceError
from gateflow.services.coupon_service import CouponService
from gateflow.services.customer_service import CustomerService
from gateflow.services.exchange_rates import (
    ExchangeRateProvider,
    ExchangeRateService,
    create_exchange_rate_provider,
)
from gateflow.services.payment_provider import PaymentProvider, create_payment_provider
from gateflow.services.payment_service import PaymentService
from gateflow.services.product_service import ProductService
from gateflow.services.rate_limit import ApiKeyRateLimiter
from gateflow.services.refund_request_service import RefundRequestService
from gateflow.services.webhook_service import WebhookService

VERSION = '1.4.0'

logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    400: 'INVALID_INPUT',
    401: 'UNAUTHORIZED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'INVALID_INPUT',
    409: 'CONFLICT',
    413: 'INVALID_INPUT',
    415: 'INVALID_INPUT',
    429: 'RATE_LIMITED',
}

_LOCAL_ORIGIN = re.compile(r'^https?://(localhost|127\.0\.0\.1)(:\d+)?$')


def create_app(
    config_class: type[Config] = Config,
    *,
    payment_provider: Optional[PaymentProvider] = None,
    exchange_rate_provider: Optional[ExchangeRateProvider] = None,
    usage_executor=None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.config.get('SECRET_KEY'):
        logger.warning("SECRET_KEY not set! Using insecure default. Generate a secure key with: "
                       "python -c 'import secrets; print(secrets.token_hex(32))'")
        app.config['SECRET_KEY'] = 'dev-secret-key-change-in-production'

    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    _configure_security_headers(app)

    db_factory = make_db_factory(app.config['DATABASE_PATH'])
    admin_user_repo = AdminUserRepository(db_factory)
    payment_repo = PaymentRepository(db_factory)
    product_repo = ProductRepository(db_factory)
    customer_repo = CustomerRepository(db_factory)
    access_repo = ProductAccessRepository(db_factory)
    refund_repo = RefundRequestRepository(db_factory)

    if payment_provider is None:
        payment_provider = create_payment_provider(app.config)
    if exchange_rate_provider is None:
        exchange_rate_provider = create_exchange_rate_provider(app.config)
    if usage_executor is None:
        usage_executor = ThreadPoolExecutor(
            max_workers=app.config['API_KEY_USAGE_WORKERS'],
            thread_name_prefix='api-key-usage',
        )

    api_key_service = ApiKeyService(
        ApiKeyRepository(db_factory),
        ApiKeyAuditRepository(db_factory),
        usage_executor=usage_executor,
        environment=app.config['API_KEY_ENVIRONMENT'],
    )
    rate_limiter = ApiKeyRateLimiter(
        app.config['RATELIMIT_STORAGE_URI'],
        enabled=app.config['API_KEY_RATELIMIT_ENABLED'],
    )
    guard = AccessGuard(api_key_service, rate_limiter, csrf)
    exchange_rates = ExchangeRateService(exchange_rate_provider, app.config['EXCHANGE_RATE_CACHE_SECONDS'])

    scheduler = _start_scheduler(app, api_key_service)

    app.extensions['gateflow'] = {
        'admin_users': admin_user_repo,
        'api_keys': api_key_service,
        'rate_limiter': rate_limiter,
        'payment_provider': payment_provider,
        'exchange_rates': exchange_rates,
        'scheduler': scheduler,
        'db_factory': db_factory,
    }

    app.register_blueprint(create_auth_blueprint(
        admin_user_repo=admin_user_repo,
        limiter=limiter,
        csrf=csrf,
        logger=logger,
    ))
    app.register_blueprint(create_health_blueprint(
        db_factory=db_factory,
        scheduler=scheduler,
        payment_provider=payment_provider,
        version=VERSION,
    ))
    app.register_blueprint(create_api_keys_blueprint(
        api_key_service=api_key_service,
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_products_blueprint(
        product_service=ProductService(product_repo),
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_coupons_blueprint(
        coupon_service=CouponService(CouponRepository(db_factory)),
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_payments_blueprint(
        payment_service=PaymentService(payment_repo, access_repo, payment_provider),
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_refund_requests_blueprint(
        refund_request_service=RefundRequestService(refund_repo, payment_repo, access_repo, payment_provider),
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_webhooks_blueprint(
        webhook_service=WebhookService(WebhookRepository(db_factory), WebhookLogRepository(db_factory)),
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_users_blueprint(
        customer_service=CustomerService(customer_repo, access_repo, product_repo),
        guard=guard,
        logger=logger,
    ))
    app.register_blueprint(create_analytics_blueprint(
        analytics_service=AnalyticsService(
            payment_repo,
            product_repo,
            customer_repo,
            refund_repo,
            exchange_rates,
            display_currency=app.config['DISPLAY_CURRENCY'],
        ),
        guard=guard,
        logger=logger,
    ))

    _register_error_handlers(app)
    return app


@login_manager.user_loader
def load_user(user_id):
    """Load admin by ID for Flask-Login."""
    try:
        return current_app.extensions['gateflow']['admin_users'].get_by_id(user_id)
    except sqlite3.Error as e:
        logger.error(f"Error loading user: {e}")
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': {'code': 'UNAUTHORIZED', 'message': 'Authentication required'}}), 401


def _start_scheduler(app: Flask, api_key_service: ApiKeyService) -> Optional[BackgroundScheduler]:
    if not app.config.get('SCHEDULER_ENABLED'):
        return None
    scheduler = BackgroundScheduler(timezone='UTC')
    scheduler.add_job(
        api_key_service.sweep_expired_grace,
        'interval',
        minutes=app.config['GRACE_SWEEP_INTERVAL_MINUTES'],
        id='api_key_grace_sweep',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler started with API key grace sweep")
    return scheduler


def _configure_security_headers(app: Flask) -> None:
    # Only enforce HTTPS if explicitly enabled (for reverse proxy setups)
    if app.config.get('FORCE_HTTPS'):
        Talisman(
            app,
            force_https=True,
            strict_transport_security=True,
            content_security_policy={'default-src': "'none'", 'frame-ancestors': "'none'"},
        )
    else:
        @app.after_request
        def set_security_headers(response):
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'SAMEORIGIN'
            response.headers['X-XSS-Protection'] = '1; mode=block'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            return response

    @app.after_request
    def set_rate_limit_headers(response):
        window = g.get('rate_limit')
        if window is not None:
            response.headers['X-RateLimit-Limit'] = str(window.limit)
            response.headers['X-RateLimit-Remaining'] = str(window.remaining)
            response.headers['X-RateLimit-Reset'] = str(window.reset_at)
        return response

    @app.after_request
    def set_cors_headers(response):
        origin = request.headers.get('Origin')
        if not origin or not request.path.startswith('/api/v1/'):
            return response
        if origin == app.config.get('SITE_URL') or _LOCAL_ORIGIN.match(origin):
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Access-Control-Allow-Credentials'] = 'true'
            response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PATCH, DELETE, OPTIONS'
            response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization, X-API-Key, X-CSRFToken'
            response.headers['Access-Control-Max-Age'] = '86400'
            response.vary.add('Origin')
        return response


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error.message}")
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if isinstance(error, RateLimitedError):
            response.headers['Retry-After'] = str(error.retry_after)
        return response

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error: CSRFError):
        return jsonify({'error': {'code': 'FORBIDDEN', 'message': f'CSRF validation failed: {error.description}'}}), 403

    @app.errorhandler(sqlite3.IntegrityError)
    def handle_integrity_error(error: sqlite3.IntegrityError):
        logger.warning(f"Integrity error on {request.method} {request.path}: {error}")
        message = 'Resource conflicts with an existing record'
        if 'UNIQUE' in str(error):
            column = str(error).rsplit('.', 1)[-1]
            message = f'A record with this {column} already exists'
        elif 'FOREIGN KEY' in str(error):
            message = 'Resource is referenced by other records'
        return jsonify({'error': {'code': 'CONFLICT', 'message': message}}), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        code = _HTTP_ERROR_CODES.get(error.code, 'INTERNAL_ERROR')
        response = jsonify({'error': {'code': code, 'message': error.description}})
        response.status_code = error.code or 500
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({'error': {'code': 'INTERNAL_ERROR', 'message': 'Internal server error'}}), 500
