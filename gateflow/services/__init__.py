"""services package.

Only the error taxonomy is re-exported here; utilities import it, so the
package must stay free of service imports.
"""
from .base import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    ServiceError,
    UnauthorizedError,
    ValidationError,
)

__all__ = [
    'ConflictError',
    'ForbiddenError',
    'InternalError',
    'InvalidInputError',
    'NotFoundError',
    'RateLimitedError',
    'ServiceError',
    'UnauthorizedError',
    'ValidationError',
]
