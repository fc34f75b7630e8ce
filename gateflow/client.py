"""Thin HTTP client for the GateFlow v1 API.

Built once from explicit settings and handed to whatever needs it; there is
no module-level instance.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional

import requests

logger = logging.getLogger(__name__)


class GateFlowApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f'{code}: {message}')
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


class GateFlowClient:
    """Calls the v1 API with an API key."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError('base_url is required')
        if not api_key:
            raise ValueError('api_key is required')
        self._base_url = base_url.rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()
        self._headers = {'X-API-Key': api_key, 'Accept': 'application/json'}

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                json: Optional[Dict[str, Any]] = None) -> Any:
        url = f'{self._base_url}/api/v1/{path.lstrip("/")}'
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning(f"GateFlow API {method} {path} failed: {exc}")
            raise GateFlowApiError(0, 'NETWORK_ERROR', str(exc)) from exc

        if response.status_code == 204:
            return None
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            error = body.get('error') or {}
            raise GateFlowApiError(
                response.status_code,
                error.get('code', 'INTERNAL_ERROR'),
                error.get('message', f'HTTP {response.status_code}'),
                error.get('details'),
            )
        return body

    def get(self, path: str, **params: Any) -> Any:
        return self.request('GET', path, params=params or None)

    def post(self, path: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return self.request('POST', path, json=data or {})

    def patch(self, path: str, data: Dict[str, Any]) -> Any:
        return self.request('PATCH', path, json=data)

    def delete(self, path: str, **params: Any) -> Any:
        return self.request('DELETE', path, params=params or None)

    def iter_pages(self, path: str, **params: Any) -> Iterator[Dict[str, Any]]:
        """Yield every item of a paginated listing by following ``next_cursor``."""
        query = dict(params)
        while True:
            body = self.get(path, **query)
            yield from body.get('data', [])
            pagination = body.get('pagination') or {}
            next_cursor = pagination.get('next_cursor')
            if not pagination.get('has_more') or not next_cursor:
                return
            query['cursor'] = next_cursor

    def list_products(self, **params: Any) -> Dict[str, Any]:
        return self.get('products', **params)

    def get_dashboard(self) -> Dict[str, Any]:
        return self.get('analytics/dashboard')['data']

    def process_refund_request(self, request_id: str, action: str, admin_response: Optional[str] = None) -> Dict[str, Any]:
        payload = {'action': action}
        if admin_response is not None:
            payload['admin_response'] = admin_response
        return self.patch(f'refund-requests/{request_id}', payload)['data']
