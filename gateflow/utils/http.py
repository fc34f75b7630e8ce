"""Request parsing and response envelope helpers shared by the v1 blueprints."""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flask import jsonify, request

from gateflow.services.base import InvalidInputError, ValidationError
from gateflow.utils.validators import validate_uuid


def json_body(required: bool = True) -> Dict[str, Any]:
    """Return the request JSON object, or an empty dict for an empty optional body."""
    if not request.get_data(cache=True):
        if required:
            raise ValidationError('Request body is required')
        return {}
    data = request.get_json(silent=True)
    if data is None:
        raise InvalidInputError('Invalid JSON body')
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def require_id(value: str, label: str = 'resource') -> str:
    valid, _ = validate_uuid(value)
    if not valid:
        raise InvalidInputError(f'Invalid {label} ID format')
    return value


def ok(data: Any, status: int = 200) -> Tuple[Any, int]:
    return jsonify({'data': data}), status


def page(result: Dict[str, Any]) -> Tuple[Any, int]:
    return jsonify(result), 200


def client_ip() -> Optional[str]:
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr
