"""Service error taxonomy.

Every error raised by a service or guard carries a stable ``code`` and the
HTTP status it maps to. The app factory renders them into the error envelope.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    code = 'INTERNAL_ERROR'
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        error = {'code': self.code, 'message': self.message}
        if self.details:
            error['details'] = self.details
        return {'error': error}


class InvalidInputError(ServiceError):
    code = 'INVALID_INPUT'
    status_code = 400


class ValidationError(ServiceError):
    code = 'VALIDATION_ERROR'
    status_code = 400


class UnauthorizedError(ServiceError):
    code = 'UNAUTHORIZED'
    status_code = 401


class ForbiddenError(ServiceError):
    code = 'FORBIDDEN'
    status_code = 403


class NotFoundError(ServiceError):
    code = 'NOT_FOUND'
    status_code = 404


class ConflictError(ServiceError):
    code = 'CONFLICT'
    status_code = 409


class RateLimitedError(ServiceError):
    code = 'RATE_LIMITED'
    status_code = 429

    def __init__(self, message: str, retry_after: int = 60, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class InternalError(ServiceError):
    pass


class PaymentProviderError(InternalError):
    """Raised when the payment provider rejects or cannot be reached."""


class ExchangeRateError(InternalError):
    """Raised when exchange rates cannot be fetched."""
