"""Request authentication and scope enforcement for the v1 API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional, Sequence, Tuple

from flask import current_app, g, request
from flask_login import current_user

from gateflow.services.api_key_service import ApiKeyService
from gateflow.services.base import ForbiddenError, UnauthorizedError
from gateflow.services.rate_limit import ApiKeyRateLimiter
from gateflow.utils.http import client_ip
from gateflow.utils.scopes import WILDCARD, missing_scopes

logger = logging.getLogger(__name__)

SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS')


@dataclass(frozen=True)
class AuthContext:
    """Who is calling: a logged-in admin or an API key acting for one."""
    method: str
    admin_user_id: str
    scopes: Tuple[str, ...]
    api_key_id: Optional[str] = None
    key_prefix: Optional[str] = None

    @property
    def is_session(self) -> bool:
        return self.method == 'session'


def extract_api_key() -> Optional[str]:
    """Read a key from ``X-API-Key`` or an ``Authorization: Bearer`` header."""
    header_key = request.headers.get('X-API-Key')
    if header_key:
        return header_key.strip()
    authorization = request.headers.get('Authorization', '')
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() == 'bearer' and token.strip():
        return token.strip()
    return None


class AccessGuard:
    """Decorators that authenticate a request and enforce scopes."""

    def __init__(self, api_key_service: ApiKeyService, rate_limiter: ApiKeyRateLimiter, csrf):
        self._api_keys = api_key_service
        self._rate_limiter = rate_limiter
        self._csrf = csrf

    def _session_context(self) -> Optional[AuthContext]:
        if not current_user.is_authenticated:
            return None
        if request.method not in SAFE_METHODS and current_app.config.get('WTF_CSRF_ENABLED', True):
            self._csrf.protect()
        return AuthContext(method='session', admin_user_id=current_user.id, scopes=(WILDCARD,))

    def authenticate(self) -> AuthContext:
        """Session first, then API key; raises when neither is present or valid."""
        context = self._session_context()
        if context is not None:
            return context

        presented = extract_api_key()
        if not presented:
            raise UnauthorizedError('Authentication required. Provide a session or an API key.')

        auth = self._api_keys.authenticate(presented, ip_address=client_ip())
        g.rate_limit = self._rate_limiter.hit(auth.key_id, auth.rate_limit_per_minute)
        if auth.in_grace_period:
            logger.info(f"API key {auth.key_prefix}... used during rotation grace period")
        return AuthContext(
            method='api_key',
            admin_user_id=auth.admin_user_id,
            scopes=auth.scopes,
            api_key_id=auth.key_id,
            key_prefix=auth.key_prefix,
        )

    @staticmethod
    def authorize(context: AuthContext, required: Sequence[str]) -> None:
        missing = missing_scopes(context.scopes, required)
        if missing:
            raise ForbiddenError(
                f'Missing required permission: {missing[0]}',
                details={'required_scopes': list(required), 'missing_scopes': missing},
            )

    def require_scopes(self, *scopes: str):
        """Authenticate the caller and require every listed scope."""
        def decorator(f):
            @wraps(f)
            def decorated_function(*args, **kwargs):
                context = self.authenticate()
                self.authorize(context, scopes)
                g.auth = context
                return f(*args, **kwargs)
            return decorated_function
        return decorator

    def session_required(self, f):
        """Allow only logged-in admins; API keys can never manage API keys."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            context = self._session_context()
            if context is None:
                if extract_api_key():
                    raise ForbiddenError('API keys cannot manage API keys. Sign in to the admin panel instead.')
                raise UnauthorizedError('Authentication required')
            g.auth = context
            return f(*args, **kwargs)
        return decorated_function
